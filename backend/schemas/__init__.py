"""
数据验证模式目录
"""

from .response import success, failure

__all__ = [
    # 响应
    "success", "failure"
]
