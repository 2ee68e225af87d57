"""
数据验证模式目录
"""

from .auth import UserCreate, UserLogin, UserUpdate, UserInfo
from .response import success, paginate

__all__ = [
    # 认证
    "UserCreate", "UserLogin", "UserUpdate", "UserInfo",
    # 响应
    "success", "paginate"
]
