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
    FILE_SYSTEM_ERROR = 1007        # 文件系统错误

    # ==================== 认证/授权错误 (2xxx) ====================
    UNAUTHORIZED = 2001             # 未认证（未登录）
    TOKEN_INVALID = 2003            # 令牌无效
    PERMISSION_DENIED = 2004        # 权限不足

    # ==================== 业务通用错误 (3xxx) ====================
    VALIDATION_ERROR = 3001         # 参数验证失败
    RESOURCE_NOT_FOUND = 3002       # 资源不存在
    RESOURCE_CONFLICT = 3004        # 资源冲突
    OPERATION_FAILED = 3005         # 操作失败
    INVALID_OPERATION = 3006        # 无效操作
    METHOD_NOT_ALLOWED = 3013       # 请求方法不允许

    # ==================== 模块级错误 (4xxx) ====================
    # 4200-4299: 相册媒体模块
    DIRECTORY_TERM_NOT_FOUND = 4201
    ALBUM_NOT_FOUND = 4202
    MEDIA_NOT_FOUND = 4203
    DIRECTORY_MOVE_INVALID = 4204


# 错误码对应的默认消息
ERROR_MESSAGES: Dict[int, str] = {
    ErrorCode.SUCCESS: "操作成功",

    # 系统级
    ErrorCode.INTERNAL_ERROR: "服务器内部错误，请稍后重试",
    ErrorCode.DATABASE_ERROR: "数据库操作失败",
    ErrorCode.FILE_SYSTEM_ERROR: "文件系统错误",

    # 认证/授权
    ErrorCode.UNAUTHORIZED: "请先登录",
    ErrorCode.TOKEN_INVALID: "无效的认证凭据",
    ErrorCode.PERMISSION_DENIED: "没有权限执行此操作",

    # 业务通用
    ErrorCode.VALIDATION_ERROR: "参数验证失败",
    ErrorCode.RESOURCE_NOT_FOUND: "请求的资源不存在",
    ErrorCode.RESOURCE_CONFLICT: "资源冲突",
    ErrorCode.OPERATION_FAILED: "操作失败",
    ErrorCode.INVALID_OPERATION: "无效的操作",
    ErrorCode.METHOD_NOT_ALLOWED: "请求方法不允许",

    # 模块级
    ErrorCode.DIRECTORY_TERM_NOT_FOUND: "目录不存在",
    ErrorCode.ALBUM_NOT_FOUND: "相册不存在",
    ErrorCode.MEDIA_NOT_FOUND: "媒体不存在",
    ErrorCode.DIRECTORY_MOVE_INVALID: "无效的目录移动",
}

# 错误码对应的 HTTP 状态码
ERROR_HTTP_STATUS: Dict[int, int] = {
    ErrorCode.SUCCESS: status.HTTP_200_OK,

    # 系统级 -> 500
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.DATABASE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.FILE_SYSTEM_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,

    # 认证/授权 -> 401/403
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.TOKEN_INVALID: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,

    # 业务通用 -> 400/404/405/409
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.RESOURCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RESOURCE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.OPERATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_OPERATION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.METHOD_NOT_ALLOWED: status.HTTP_405_METHOD_NOT_ALLOWED,

    # 模块级
    ErrorCode.DIRECTORY_TERM_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ALBUM_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.MEDIA_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.DIRECTORY_MOVE_INVALID: status.HTTP_400_BAD_REQUEST,
}


def _error_body(code: int, message: str, data: Any = None) -> dict:
    """构建统一错误响应体"""
    return {
        "success": False,
        "code": int(code),
        "message": message,
        "data": data
    }


class AppException(Exception):
    """
    应用异常基类

    用于抛出业务异常，包含错误码和详细信息

    Usage:
        raise AppException(ErrorCode.RESOURCE_NOT_FOUND, "目录不存在")
        raise AppException(ErrorCode.VALIDATION_ERROR, data={"field": "name", "error": "不能为空"})
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
            content=self.to_dict()
        )

    def to_dict(self) -> dict:
        """转换为字典"""
        return _error_body(self.code, self.message, self.data)


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
        if resource_id is not None:
            message = f"{resource} (ID: {resource_id}) 不存在"
        super().__init__(code=code, message=message)


class PermissionException(AppException):
    """权限异常"""

    def __init__(self, message: str = "没有权限执行此操作"):
        super().__init__(
            code=ErrorCode.PERMISSION_DENIED,
            message=message
        )


class BusinessException(AppException):
    """业务异常"""

    def __init__(
        self,
        code: int = ErrorCode.OPERATION_FAILED,
        message: str = "操作失败",
        data: Any = None
    ):
        super().__init__(code=code, message=message, data=data)


# ==================== 异常处理器 ====================

async def app_exception_handler(request, exc: AppException):
    """AppException 异常处理器"""
    return exc.to_response()


def register_exception_handlers(app):
    """
    注册异常处理器

    在 main.py 中调用：
        from core.errors import register_exception_handlers
        register_exception_handlers(app)
    """
    from fastapi.exceptions import RequestValidationError
    from starlette.exceptions import HTTPException as StarletteHTTPException

    app.add_exception_handler(AppException, app_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })

        # 请求体不是合法 JSON 时给出明确提示
        if any(e["type"] == "json_invalid" for e in errors):
            message = "无效的 JSON 数据"
        else:
            message = "参数验证失败"

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(ErrorCode.VALIDATION_ERROR, message, {"errors": errors})
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request, exc: StarletteHTTPException):
        # 映射 HTTP 状态码到业务错误码
        code_mapping = {
            400: ErrorCode.VALIDATION_ERROR,
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.PERMISSION_DENIED,
            404: ErrorCode.RESOURCE_NOT_FOUND,
            405: ErrorCode.METHOD_NOT_ALLOWED,
            500: ErrorCode.INTERNAL_ERROR,
        }

        code = code_mapping.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        message = str(exc.detail) if exc.detail else ERROR_MESSAGES.get(code, "请求失败")

        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(code, message)
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request, exc: Exception):
        # 管理端工具：直接向客户端暴露异常信息
        logger.error(f"未处理异常: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(ErrorCode.INTERNAL_ERROR, str(exc) or ERROR_MESSAGES[ErrorCode.INTERNAL_ERROR])
        )
