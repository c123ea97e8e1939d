"""
统一响应格式
API返回的标准JSON结构：{"success": bool, ...}
"""

from typing import Any, Optional


def success(message: Optional[str] = None, **fields: Any) -> dict:
    """
    成功响应

    额外字段原样平铺到响应体中：
        success(term_id=3, term_name="风景") -> {"success": True, "term_id": 3, "term_name": "风景"}
    """
    body = {"success": True}
    if message is not None:
        body["message"] = message
    body.update(fields)
    return body


def failure(message: str, **fields: Any) -> dict:
    """业务失败响应（HTTP 200，由调用方决定是否改写状态码）"""
    body = {"success": False, "message": message}
    body.update(fields)
    return body
