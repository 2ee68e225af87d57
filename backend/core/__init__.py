"""
Second Brain 核心模块
提供应用的基础设施和通用功能

导出列表：
- 配置管理: get_settings, Settings
- 数据库: Base, get_db, async_session
- 安全认证: get_current_user, create_token, decode_token, hash_password, verify_password
- 错误处理: ErrorCode, AppException 及其子类, register_exception_handlers
- 中间件: RequestLoggingMiddleware, SecurityHeadersMiddleware
"""

# 配置管理
from .config import get_settings, Settings, reload_settings

# 数据库
from .database import Base, get_db, async_session, init_db, close_db

# 安全认证
from .security import (
    get_current_user,
    create_token,
    create_token_pair,
    decode_token,
    hash_password,
    verify_password,
    TokenData
)

# 错误处理
from .errors import (
    ErrorCode,
    AppException,
    ValidationException,
    AuthException,
    NotFoundException,
    PermissionException,
    BusinessException,
    DependencyException,
    register_exception_handlers
)

# 中间件
from .middleware import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware
)


__all__ = [
    # 配置
    "get_settings",
    "Settings",
    "reload_settings",

    # 数据库
    "Base",
    "get_db",
    "async_session",
    "init_db",
    "close_db",

    # 安全
    "get_current_user",
    "create_token",
    "create_token_pair",
    "decode_token",
    "hash_password",
    "verify_password",
    "TokenData",

    # 错误
    "ErrorCode",
    "AppException",
    "ValidationException",
    "AuthException",
    "NotFoundException",
    "PermissionException",
    "BusinessException",
    "DependencyException",
    "register_exception_handlers",

    # 中间件
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
]
