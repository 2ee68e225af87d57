"""
标准错误码体系
提供统一的错误码定义和异常处理
"""

import logging
from typing import Optional, Any, Dict
from enum import IntEnum
from fastapi import status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(IntEnum):
    """
    标准错误码
    
    错误码规范：
    - 0: 成功
    - 1xxx: 系统级错误
    - 2xxx: 认证/授权错误
    - 3xxx: 业务通用错误
    - 4xxx: 模块级错误（各模块自定义）
    """
    
    # ==================== 成功 ====================
    SUCCESS = 0
    
    # ==================== 系统级错误 (1xxx) ====================
    INTERNAL_ERROR = 1000           # 服务器内部错误
    DATABASE_ERROR = 1001           # 数据库错误
    
    # ==================== 认证/授权错误 (2xxx) ====================
    UNAUTHORIZED = 2001             # 未认证（未登录）
    PERMISSION_DENIED = 2004        # 权限不足
    ACCOUNT_NOT_FOUND = 2009        # 账户不存在
    
    # ==================== 业务通用错误 (3xxx) ====================
    VALIDATION_ERROR = 3001         # 参数验证失败
    RESOURCE_NOT_FOUND = 3002       # 资源不存在
    OPERATION_FAILED = 3005         # 操作失败
    INVALID_OPERATION = 3006        # 无效操作
    FILE_TOO_LARGE = 3009           # 文件过大
    FILE_TYPE_NOT_ALLOWED = 3010    # 文件类型不允许
    
    # ==================== 模块级错误 (4xxx) - 预留给各模块 ====================
    # 4000-4099: 知识库模块
    BRAIN_COLLECTION_NOT_FOUND = 4001
    BRAIN_CONTENT_NOT_FOUND = 4002
    BRAIN_COLLECTION_NAME_EXISTS = 4003
    BRAIN_DEFAULT_COLLECTION_PROTECTED = 4004
    BRAIN_PRIVATE = 4005
    BRAIN_LINK_NOT_FOUND = 4006
    
    # 4100-4999: 预留


# 错误码对应的默认消息
ERROR_MESSAGES: Dict[int, str] = {
    ErrorCode.SUCCESS: "操作成功",
    
    # 系统级
    ErrorCode.INTERNAL_ERROR: "服务器内部错误，请稍后重试",
    ErrorCode.DATABASE_ERROR: "数据库操作失败",
    
    # 认证/授权
    ErrorCode.UNAUTHORIZED: "请先登录",
    ErrorCode.PERMISSION_DENIED: "没有权限执行此操作",
    ErrorCode.ACCOUNT_NOT_FOUND: "账户不存在",
    
    # 业务通用
    ErrorCode.VALIDATION_ERROR: "参数验证失败",
    ErrorCode.RESOURCE_NOT_FOUND: "请求的资源不存在",
    ErrorCode.OPERATION_FAILED: "操作失败",
    ErrorCode.INVALID_OPERATION: "无效的操作",
    ErrorCode.FILE_TOO_LARGE: "文件大小超出限制",
    ErrorCode.FILE_TYPE_NOT_ALLOWED: "不支持的文件类型",
    
    # 模块级
    ErrorCode.BRAIN_COLLECTION_NOT_FOUND: "收藏夹不存在",
    ErrorCode.BRAIN_CONTENT_NOT_FOUND: "内容不存在",
    ErrorCode.BRAIN_COLLECTION_NAME_EXISTS: "同名收藏夹已存在",
    ErrorCode.BRAIN_DEFAULT_COLLECTION_PROTECTED: "默认收藏夹不能重命名或删除",
    ErrorCode.BRAIN_PRIVATE: "该知识库未公开",
    ErrorCode.BRAIN_LINK_NOT_FOUND: "分享链接不存在",
}

# 错误码对应的 HTTP 状态码
ERROR_HTTP_STATUS: Dict[int, int] = {
    ErrorCode.SUCCESS: status.HTTP_200_OK,
    
    # 系统级 -> 500
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.DATABASE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    
    # 认证/授权 -> 401/403
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.ACCOUNT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    
    # 业务通用 -> 400/404/413
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.RESOURCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.OPERATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_OPERATION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.FILE_TOO_LARGE: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    ErrorCode.FILE_TYPE_NOT_ALLOWED: status.HTTP_400_BAD_REQUEST,
    
    # 模块级
    ErrorCode.BRAIN_COLLECTION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BRAIN_CONTENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BRAIN_COLLECTION_NAME_EXISTS: status.HTTP_400_BAD_REQUEST,
    ErrorCode.BRAIN_DEFAULT_COLLECTION_PROTECTED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.BRAIN_PRIVATE: status.HTTP_403_FORBIDDEN,
    ErrorCode.BRAIN_LINK_NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


class AppException(Exception):
    """
    应用异常基类
    
    用于抛出业务异常，包含错误码和详细信息
    
    Usage:
        raise AppException(ErrorCode.RESOURCE_NOT_FOUND, "用户不存在")
        raise AppException(ErrorCode.VALIDATION_ERROR, data={"field": "email", "error": "格式不正确"})
    """
    
    def __init__(
        self,
        code: int = ErrorCode.INTERNAL_ERROR,
        message: Optional[str] = None,
        data: Any = None
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, "未知错误")
        self.data = data
        self.http_status = ERROR_HTTP_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        super().__init__(self.message)
    
    def to_response(self) -> JSONResponse:
        """转换为 JSONResponse"""
        return JSONResponse(
            status_code=self.http_status,
            content={
                "code": self.code,
                "message": self.message,
                "data": self.data
            }
        )
    
    def to_dict(self) -> dict:
        """转换为字典"""
        return {
            "code": self.code,
            "message": self.message,
            "data": self.data
        }


class ValidationException(AppException):
    """参数验证异常"""
    
    def __init__(self, message: str = "参数验证失败", errors: Optional[list] = None):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            data={"errors": errors} if errors else None
        )


class AuthException(AppException):
    """认证异常"""
    
    def __init__(
        self,
        code: int = ErrorCode.UNAUTHORIZED,
        message: Optional[str] = None
    ):
        super().__init__(code=code, message=message)


class NotFoundException(AppException):
    """资源不存在异常"""
    
    def __init__(
        self,
        resource: str = "资源",
        resource_id: Any = None,
        code: int = ErrorCode.RESOURCE_NOT_FOUND
    ):
        message = f"{resource}不存在"
        if resource_id:
            message = f"{resource} (ID: {resource_id}) 不存在"
        super().__init__(
            code=code,
            message=message
        )


class PermissionException(AppException):
    """权限异常"""
    
    def __init__(self, message: str = "没有权限执行此操作", code: int = ErrorCode.PERMISSION_DENIED):
        super().__init__(
            code=code,
            message=message
        )


class BusinessException(AppException):
    """业务异常"""
    
    def __init__(
        self,
        code: int = ErrorCode.OPERATION_FAILED,
        message: Optional[str] = None,
        data: Any = None
    ):
        super().__init__(code=code, message=message, data=data)


class DependencyException(AppException):
    """依赖服务异常（数据库、文件存储等不可用）"""
    
    def __init__(self, code: int = ErrorCode.DATABASE_ERROR, message: Optional[str] = None):
        super().__init__(code=code, message=message)


# ==================== 异常处理器 ====================

def register_exception_handlers(app):
    """
    注册异常处理器
    
    在 main.py 中调用：
        from core.errors import register_exception_handlers
        register_exception_handlers(app)
    """
    from fastapi.exceptions import RequestValidationError
    from sqlalchemy.exc import SQLAlchemyError
    from starlette.exceptions import HTTPException as StarletteHTTPException
    
    @app.exception_handler(AppException)
    async def handle_app_exception(request, exc: AppException):
        return exc.to_response()
    
    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })
        
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "code": ErrorCode.VALIDATION_ERROR,
                "message": "参数验证失败",
                "data": {"errors": errors}
            }
        )
    
    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request, exc: SQLAlchemyError):
        logger.error(f"数据库异常: {request.method} {request.url.path} | {exc}", exc_info=True)
        return DependencyException(ErrorCode.DATABASE_ERROR).to_response()
    
    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request, exc: StarletteHTTPException):
        # 映射 HTTP 状态码到业务错误码
        code_mapping = {
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.PERMISSION_DENIED,
            404: ErrorCode.RESOURCE_NOT_FOUND,
            405: ErrorCode.INVALID_OPERATION,
            500: ErrorCode.INTERNAL_ERROR,
        }
        
        code = code_mapping.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        message = str(exc.detail) if exc.detail else ERROR_MESSAGES.get(code, "请求失败")
        
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "code": code,
                "message": message,
                "data": None
            },
            headers=getattr(exc, "headers", None)
        )
