"""
工具函数目录
按功能分类组织
"""

from .timezone import get_local_time, to_local_time
from .text import sanitize_dir_name, dedupe_filename

__all__ = [
    # 时间
    "get_local_time",
    "to_local_time",
    # 文本处理
    "sanitize_dir_name",
    "dedupe_filename",
]
