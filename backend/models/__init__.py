"""
数据模型目录
"""

from .account import User
from .storage import FileRecord

__all__ = ["User", "FileRecord"]
