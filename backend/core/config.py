"""
系统配置管理
统一管理所有配置项，支持环境变量覆盖
"""

import logging
from pathlib import Path
from pydantic_settings import BaseSettings
from typing import List, Optional
from urllib.parse import quote_plus

# 获取backend目录的绝对路径
BACKEND_DIR = Path(__file__).parent.parent.resolve()
ENV_FILE = BACKEND_DIR / ".env"

DEFAULT_JWT_SECRET = "your-secret-key-change-in-production"


class Settings(BaseSettings):
    """系统配置"""

    # 应用信息
    app_name: str = "Media Album"
    app_version: str = "1.0.0"
    debug: bool = False

    # 数据库配置（database_url 优先，未设置时按 MySQL 参数拼接）
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 3306
    db_user: str = "root"
    db_password: str = ""
    db_name: str = "media_album"

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        encoded_user = quote_plus(self.db_user)
        encoded_pwd = quote_plus(self.db_password)
        return f"mysql+aiomysql://{encoded_user}:{encoded_pwd}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def db_url_sync(self) -> str:
        if self.database_url:
            return self.database_url.replace("+aiomysql", "+pymysql").replace("+aiosqlite", "")
        encoded_user = quote_plus(self.db_user)
        encoded_pwd = quote_plus(self.db_password)
        return f"mysql+pymysql://{encoded_user}:{encoded_pwd}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def is_mysql(self) -> bool:
        return self.db_url.startswith("mysql")

    # JWT令牌配置
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_secret_old: Optional[str] = None  # 旧密钥（用于密钥轮换）
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60

    # 文件存储（目录树镜像与媒体文件的根目录）
    upload_dir: str = "storage/uploads"

    # 时间戳写入使用的固定时区偏移（小时）
    tz_offset_hours: int = 8

    # ==================== 相册媒体配置 ====================
    # 目录分类使用的词汇表
    directory_vocabulary: str = "media_directories"
    # 相册内容类型及其技术字段
    album_bundle: str = "media_album_av"
    album_media_field: str = "field_media_album_av_media"
    album_grouping_field: str = "field_media_album_av_grouping"
    album_directory_field: str = "field_media_album_av_directory"
    # 媒体上引用目录分类的字段
    media_directory_field: str = "directory"
    # 不参与分组的字段
    excluded_album_fields: List[str] = [
        "field_media_album_av_grouping",
        "field_media_album_av_media",
        "field_media_album_av_directory",
    ]
    excluded_media_fields: List[str] = [
        "field_media_album_av_photo",
        "field_media_album_av_video",
        "field_media_document",
    ]
    # 相册媒体字段未限定类型时的回退媒体类型
    fallback_media_bundles: List[str] = ["media_album_av_photo", "media_album_av_video"]
    # 分组层级
    max_grouping_levels: int = 5
    default_grouping: List[str] = []

    class Config:
        env_file = str(ENV_FILE)
        env_file_encoding = "utf-8"


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    获取配置单例
    支持运行时重新加载
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()

        # 安全检查: 如果是生产环境且使用默认密钥，发出警告
        if not _settings_instance.debug and _settings_instance.jwt_secret == DEFAULT_JWT_SECRET:
            logging.getLogger("core.config").warning(
                "🚨 [安全警告] 您正在生产环境模式下使用默认的 JWT_SECRET！"
                "请立即在 .env 文件中配置 JWT_SECRET。"
            )
    return _settings_instance


def reload_settings():
    """
    重新加载配置
    仅重新加载配置，不清理已签发的Token
    """
    global _settings_instance
    _settings_instance = Settings()
    return _settings_instance
