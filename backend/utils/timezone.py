# -*- coding: utf-8 -*-
"""
时区工具模块
统一使用配置中的固定时区偏移（默认东八区）
"""

from datetime import datetime, timezone, timedelta
from typing import Optional


def get_local_tz() -> timezone:
    """按配置返回固定偏移时区"""
    from core.config import get_settings  # 延迟导入，避免与 core 循环引用
    return timezone(timedelta(hours=get_settings().tz_offset_hours))


def get_local_time() -> datetime:
    """
    获取当前本地时间

    Returns:
        datetime: 带有时区信息的当前时间
    """
    return datetime.now(get_local_tz())


def to_local_time(dt: Optional[datetime]) -> Optional[datetime]:
    """
    将任意时间转换为本地时间

    Args:
        dt: 待转换的时间对象（无时区信息时视为UTC）
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(get_local_tz())
