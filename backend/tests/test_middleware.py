"""
中间件单元测试
测试请求ID与耗时响应头
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
class TestMiddleware:
    """中间件测试"""

    async def test_request_headers_added(self, client: AsyncClient):
        """测试业务请求写入请求ID与耗时"""
        response = await client.get("/api")
        assert response.status_code == 200
        
        assert len(response.headers.get("X-Request-ID", "")) == 8
        assert response.headers.get("X-Response-Time", "").endswith("ms")

    async def test_error_response_still_tagged(self, client: AsyncClient):
        """测试错误响应同样带有请求ID"""
        response = await client.get("/api/v1/media-album/grouping/fields")
        assert response.status_code == 403
        assert "X-Request-ID" in response.headers

    async def test_skip_paths(self, client: AsyncClient):
        """测试跳过路径不写入响应头"""
        response = await client.get("/health")
        
        assert response.status_code == 200
        assert "X-Request-ID" not in response.headers
