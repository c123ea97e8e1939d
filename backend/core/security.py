"""
统一鉴权模块
提供JWT令牌生成、验证和权限检查功能
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Type
from jose import JWTError, jwt
from fastapi import Depends, Request, Response
from fastapi.routing import APIRoute
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from .config import get_settings
from .errors import PermissionException

settings = get_settings()

# Bearer令牌认证（由权限依赖统一处理缺失凭据，返回 403 JSON）
security = HTTPBearer(auto_error=False)


class TokenData(BaseModel):
    """令牌数据"""
    user_id: int
    username: str
    role: str = "user"
    permissions: list[str] = []


def create_token(data: TokenData, expires_delta: Optional[timedelta] = None) -> str:
    """
    创建JWT访问令牌

    Args:
        data: 令牌数据
        expires_delta: 过期时间增量（默认使用配置值）
    """
    to_encode = data.model_dump()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({
        "exp": expire,
        "type": "access"
    })
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[TokenData]:
    """
    解码JWT令牌
    支持密钥轮换：先尝试新密钥，失败则尝试旧密钥
    """
    def _decode(secret: str):
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
        return TokenData(**payload)

    try:
        return _decode(settings.jwt_secret)
    except JWTError:
        if settings.jwt_secret_old:
            try:
                return _decode(settings.jwt_secret_old)
            except JWTError:
                return None
        return None


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenData]:
    """获取当前用户，未登录或令牌无效时返回 None"""
    if credentials is None:
        return None
    return decode_token(credentials.credentials)


def has_permission(user: Optional[TokenData], permission: str) -> bool:
    """判断用户是否拥有指定权限（系统管理员拥有全部权限）"""
    if user is None:
        return False
    return user.role == "admin" or permission in user.permissions


def require_permission(permission: str):
    """
    权限检查依赖工厂
    未登录、令牌无效或缺少权限统一返回 403
    """
    async def permission_checker(user: Optional[TokenData] = Depends(get_optional_user)) -> TokenData:
        if not has_permission(user, permission):
            raise PermissionException(f"缺少权限: {permission}")
        return user
    return permission_checker


def permission_route(permission: str) -> Type[APIRoute]:
    """
    生成先鉴权、后解析请求体的路由类

    FastAPI 在解析依赖之前就会读取并校验请求体，
    未授权的请求若携带非法 JSON 会先得到 400。
    该路由类在进入默认处理流程前完成权限检查，保证统一返回 403。

    Usage:
        router = APIRouter(route_class=permission_route("media_album.manage"))
    """
    class PermissionRoute(APIRoute):
        def get_route_handler(self) -> Callable:
            original_handler = super().get_route_handler()

            async def permission_first_handler(request: Request) -> Response:
                credentials = await security(request)
                user = decode_token(credentials.credentials) if credentials else None
                if not has_permission(user, permission):
                    raise PermissionException(f"缺少权限: {permission}")
                return await original_handler(request)

            return permission_first_handler

    return PermissionRoute
