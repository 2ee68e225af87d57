"""
工具函数目录
"""

from .storage import StorageManager, get_storage_manager

__all__ = [
    # 文件存储
    "StorageManager",
    "get_storage_manager",
]
