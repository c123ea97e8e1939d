"""
安全模块单元测试
"""

import pytest
from datetime import timedelta

from core import security
from core.errors import PermissionException
from core.security import (
    create_token,
    decode_token,
    has_permission,
    require_permission,
    permission_route,
    TokenData
)


class TestJWT:
    """JWT 令牌测试"""
    
    def test_create_token(self):
        """测试创建访问令牌"""
        token_data = TokenData(
            user_id=1,
            username="testuser",
            role="user"
        )
        token = create_token(token_data)
        
        assert token is not None
        assert isinstance(token, str)
        assert len(token) > 0
    
    def test_decode_token_valid(self):
        """测试解码有效令牌"""
        token_data = TokenData(
            user_id=1,
            username="testuser",
            role="admin"
        )
        token = create_token(token_data)
        
        decoded = decode_token(token)
        
        assert decoded is not None
        assert decoded.user_id == 1
        assert decoded.username == "testuser"
        assert decoded.role == "admin"
    
    def test_decode_token_invalid(self):
        """测试解码无效令牌"""
        invalid_token = "invalid.token.here"
        
        token_data = decode_token(invalid_token)
        
        assert token_data is None
    
    def test_decode_token_empty(self):
        """测试解码空令牌"""
        token_data = decode_token("")
        
        assert token_data is None
    
    def test_token_contains_user_info(self):
        """测试令牌包含用户信息"""
        user_id = 42
        username = "specialuser"
        role = "manager"
        
        token_data = TokenData(
            user_id=user_id,
            username=username,
            role=role
        )
        token = create_token(token_data)
        
        decoded = decode_token(token)
        
        assert decoded.user_id == user_id
        assert decoded.username == username
        assert decoded.role == role


class TestTokenData:
    """TokenData 数据类测试"""
    
    def test_token_data_creation(self):
        """测试 TokenData 创建"""
        token_data = TokenData(
            user_id=1,
            username="testuser",
            role="user"
        )
        
        assert token_data.user_id == 1
        assert token_data.username == "testuser"
        assert token_data.role == "user"
    
    def test_token_data_optional_fields(self):
        """测试 TokenData 可选字段"""
        token_data = TokenData(
            user_id=1,
            username="testuser",
            role="user",
            permissions=["read", "write"]
        )
        
        assert token_data.permissions == ["read", "write"]


class TestTokenExpiryAndRotation:
    """过期与密钥轮换测试"""
    
    def test_expired_token(self):
        """测试过期令牌"""
        token = create_token(TokenData(user_id=1, username="u"), expires_delta=timedelta(seconds=-1))
        
        assert decode_token(token) is None
    
    def test_old_secret_fallback(self, monkeypatch):
        """测试旧密钥签发的令牌仍可解码"""
        settings = security.settings
        token = create_token(TokenData(user_id=7, username="rotated"))
        
        monkeypatch.setattr(settings, "jwt_secret_old", settings.jwt_secret)
        monkeypatch.setattr(settings, "jwt_secret", "brand-new-secret")
        
        decoded = decode_token(token)
        assert decoded is not None
        assert decoded.user_id == 7


class TestPermissions:
    """权限检查测试"""
    
    def test_has_permission(self):
        """测试权限判断"""
        user = TokenData(user_id=1, username="u", permissions=["media_album.manage"])
        
        assert has_permission(user, "media_album.manage") is True
        assert has_permission(user, "other.perm") is False
        assert has_permission(None, "media_album.manage") is False
    
    def test_admin_has_all_permissions(self):
        """测试系统管理员拥有全部权限"""
        admin = TokenData(user_id=1, username="admin", role="admin")
        
        assert has_permission(admin, "anything") is True
    
    @pytest.mark.asyncio
    async def test_require_permission(self):
        """测试权限依赖"""
        checker = require_permission("media_album.manage")
        user = TokenData(user_id=1, username="u", permissions=["media_album.manage"])
        
        assert await checker(user=user) is user
        
        with pytest.raises(PermissionException):
            await checker(user=None)
        with pytest.raises(PermissionException):
            await checker(user=TokenData(user_id=2, username="v"))


class TestPermissionRoute:
    """先鉴权后解析请求体的路由类"""

    @staticmethod
    def _make_app():
        from fastapi import APIRouter, FastAPI
        from pydantic import BaseModel
        from core.errors import register_exception_handlers

        class Payload(BaseModel):
            name: str

        router = APIRouter(route_class=permission_route("media_album.manage"))

        @router.post("/echo")
        async def echo(data: Payload):
            return {"name": data.name}

        app = FastAPI()
        register_exception_handlers(app)
        app.include_router(router)
        return app

    @pytest.mark.asyncio
    @pytest.mark.parametrize("permissions, body, status", [
        ([], b"{broken", 403),
        ([], b'{"name": "a"}', 403),
        (["media_album.manage"], b"{broken", 400),
        (["media_album.manage"], b'{"name": "a"}', 200),
    ])
    async def test_permission_checked_before_body(self, permissions, body, status):
        from httpx import AsyncClient, ASGITransport

        token = create_token(TokenData(user_id=1, username="u", permissions=permissions))
        transport = ASGITransport(app=self._make_app(), raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.post(
                "/echo",
                content=body,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
            )
        assert response.status_code == status

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        from httpx import AsyncClient, ASGITransport

        transport = ASGITransport(app=self._make_app(), raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.post("/echo", json={"name": "a"})
        assert response.status_code == 403
        assert response.json()["success"] is False
