"""
依赖注入
提供全局可复用的依赖项
"""

from fastapi import Request

from .database import get_db
from .security import get_current_user, TokenData
from .config import get_settings


# 重新导出常用依赖
__all__ = [
    "get_db",
    "get_current_user",
    "TokenData",
    "get_settings",
    "get_collection_cache",
]


def get_collection_cache(request: Request):
    """获取应用级收藏夹列表缓存"""
    return request.app.state.collection_cache
