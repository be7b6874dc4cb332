import asyncio
import functools
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import Request
from loguru import logger
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from tms_middleware.core.config import Settings
from tms_middleware.core.exceptions import (
    AlreadyExistsError,
    AppError,
    ConflictError,
    InternalError,
    UnavailableError,
)

# 创建 Base 类，用于定义数据库模型
Base = declarative_base()


def utcnow() -> datetime:
    """当前 UTC 时间, 用作时间字段默认值"""
    return datetime.now(timezone.utc)


def create_engine(settings: Settings) -> AsyncEngine:
    """
    创建异步数据库引擎

    Args:
        settings: 应用配置

    Returns:
        AsyncEngine: 数据库引擎
    """
    options = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if settings.DATABASE_URL.startswith("sqlite"):
        # 内存数据库只在单个连接内有效, 所有会话共享同一个连接
        if ":memory:" in settings.DATABASE_URL or settings.DATABASE_URL.endswith("://"):
            options.update(
                poolclass=StaticPool, connect_args={"check_same_thread": False}
            )
    else:
        # 连接池配置(SQLite 不使用连接池参数)
        options.update(
            pool_size=20,  # 连接池大小
            max_overflow=10,  # 超过 pool_size 时可以创建的额外连接
            pool_recycle=3600,  # 连接回收时间（秒）
            pool_timeout=settings.RPC_TIMEOUT_SECONDS,  # 获取连接的等待上限
        )
    return create_async_engine(settings.DATABASE_URL, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """创建异步会话工厂"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine):
    """根据模型定义建表(开发环境和测试使用, 生产环境应使用迁移脚本)"""
    # 导入模型, 确保所有表都注册到 Base.metadata
    import tms_middleware.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("数据库表结构已同步")


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    异步数据库会话依赖注入

    会话工厂在启动时挂到 app.state 上, 这里按请求创建会话.
    使用示例:
        @router.get("/items/")
        async def read_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
        except Exception as e:
            logger.debug(f"数据库会话回滚: {e}")
            await session.rollback()
            raise


def translate_db_errors(func):
    """
    服务层方法装饰器: 将 SQLAlchemy 异常转换为业务异常

    - IntegrityError -> AlreadyExistsError (唯一约束冲突)
    - StaleDataError -> ConflictError (乐观锁版本冲突)
    - 连接失败 / 超时 -> UnavailableError
    - 其他数据库异常 -> InternalError

    被装饰的方法所属对象必须有 db 属性(AsyncSession).
    """

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except AppError:
            raise
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"唯一约束冲突: {func.__qualname__}, error={e.orig}")
            raise AlreadyExistsError("数据已存在, 违反唯一约束") from e
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning(f"并发更新冲突: {func.__qualname__}, error={e}")
            raise ConflictError("数据已被其他请求修改, 请重试") from e
        except (OperationalError, InterfaceError, DisconnectionError, asyncio.TimeoutError) as e:
            await _safe_rollback(self.db)
            logger.error(f"数据库不可用: {func.__qualname__}, error={e}")
            raise UnavailableError("数据库暂时不可用, 请稍后重试") from e
        except DBAPIError as e:
            await _safe_rollback(self.db)
            if e.connection_invalidated:
                logger.error(f"数据库连接失效: {func.__qualname__}, error={e}")
                raise UnavailableError("数据库暂时不可用, 请稍后重试") from e
            logger.exception(f"数据库异常: {func.__qualname__}")
            raise InternalError("数据库操作失败") from e
        except SQLAlchemyError as e:
            await _safe_rollback(self.db)
            logger.exception(f"数据库异常: {func.__qualname__}")
            raise InternalError("数据库操作失败") from e

    return wrapper


async def _safe_rollback(session: AsyncSession):
    # 连接已断开时回滚本身也可能失败, 此时只记录日志, 保留原始异常
    try:
        await session.rollback()
    except SQLAlchemyError as e:
        logger.debug(f"回滚失败: {e}")
