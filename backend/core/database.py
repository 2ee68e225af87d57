"""
数据库连接管理
提供异步数据库连接和会话管理
"""

import logging
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from sqlalchemy import text, event
from typing import AsyncGenerator

from .config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def _engine_options() -> dict:
    """按数据库方言返回引擎参数"""
    if settings.is_mysql:
        return {
            "pool_pre_ping": True,
            "pool_size": 10,
            "max_overflow": 20,
            "connect_args": {
                "init_command": f"SET time_zone = '{settings.db_time_zone}'"
            },
        }
    # SQLite：内存库必须共享同一个连接，否则每个连接看到的是不同的库
    options = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in settings.db_url or "mode=memory" in settings.db_url:
        options["poolclass"] = StaticPool
    return options


# 创建异步引擎
engine = create_async_engine(
    settings.db_url,
    echo=False,  # 禁用 SQL 详细输出，避免日志过多
    **_engine_options()
)


if settings.is_mysql:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_session_time_zone(dbapi_connection, connection_record):
        """确保每个连接会话时区一致"""
        with dbapi_connection.cursor() as cursor:
            cursor.execute(f"SET time_zone = '{settings.db_time_zone}'")
elif settings.db_url.startswith("sqlite"):
    def _sqlite_lower(value):
        # SQLite 内置 lower() 只处理 ASCII 字母
        return value.lower() if isinstance(value, str) else value

    @event.listens_for(engine.sync_engine, "connect")
    def _add_sqlite_functions(dbapi_connection, connection_record):
        """用 Unicode 版本覆盖 lower()，保证检索大小写不敏感"""
        dbapi_connection.create_function("lower", 1, _sqlite_lower)

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


async def ensure_database_exists():
    """确保 MySQL 数据库存在，如果不存在则尝试创建"""
    if not settings.is_mysql or settings.database_url:
        return

    admin_url = f"mysql+aiomysql://{settings.db_user}:{settings.db_password}@{settings.db_host}:{settings.db_port}"
    admin_engine = create_async_engine(admin_url, echo=False)

    try:
        async with admin_engine.connect() as conn:
            result = await conn.execute(
                text("SELECT SCHEMA_NAME FROM INFORMATION_SCHEMA.SCHEMATA WHERE SCHEMA_NAME = :name"),
                {"name": settings.db_name}
            )
            if result.fetchone() is None:
                logger.info(f"数据库 '{settings.db_name}' 不存在，正在创建...")
                await conn.execute(text(
                    f"CREATE DATABASE `{settings.db_name}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
                ))
                await conn.commit()
                logger.info(f"数据库 '{settings.db_name}' 创建成功")
            else:
                logger.debug(f"数据库 '{settings.db_name}' 已存在")
    except Exception as e:
        if "Access denied" in str(e) or "1044" in str(e):
            logger.error(f"用户 '{settings.db_user}' 没有创建数据库的权限，请手动创建数据库 {settings.db_name}")
        else:
            logger.error(f"检查/创建数据库失败: {e}")
        raise
    finally:
        await admin_engine.dispose()


async def init_db():
    """初始化数据库（创建所有缺失的表）"""
    await ensure_database_exists()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug(f"数据库表初始化完成（共 {len(Base.metadata.tables)} 张表）")


async def close_db():
    """关闭数据库连接"""
    await engine.dispose()
