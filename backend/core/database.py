"""
数据库连接管理
提供异步数据库连接和会话管理
"""

import logging
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from typing import AsyncGenerator

from .config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def _engine_options() -> dict:
    """按数据库类型返回引擎参数（连接池参数仅用于 MySQL）"""
    if settings.is_mysql:
        return {
            "pool_pre_ping": True,
            "pool_size": 10,
            "max_overflow": 20,
        }
    return {}


# 创建异步引擎
engine = create_async_engine(
    settings.db_url,
    echo=False,  # 禁用 SQL 详细输出，避免日志过多
    **_engine_options()
)

# 会话工厂
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


class Base(DeclarativeBase):
    """模型基类"""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话（依赖注入用）"""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db():
    """初始化数据库（创建所有表）"""
    # 导入模型以便注册到 Base.metadata
    import modules.media_album.media_album_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug(f"数据库表初始化完成（共 {len(Base.metadata.sorted_tables)} 张表）")


async def close_db():
    """关闭数据库连接"""
    await engine.dispose()
