"""
健康检查服务
"""

from datetime import datetime, timezone
from typing import Any, Dict

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tms_middleware.core.cache import CacheService
from tms_middleware.services.tms_client import TmsClient

_STATUS_ORDER = {"ok": 0, "warning": 1, "error": 2}


class HealthService:
    """健康检查服务类"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: CacheService,
        tms_client: TmsClient,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.tms_client = tms_client

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    async def check(self) -> Dict[str, Any]:
        """基础健康检查(只表示进程存活)"""
        return {"status": "ok", "timestamp": self._now()}

    async def check_database(self) -> Dict[str, str]:
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"数据库健康检查失败: {e}")
            return {"status": "error", "message": "数据库连接失败"}
        return {"status": "ok", "message": "数据库连接正常"}

    async def check_cache(self) -> Dict[str, str]:
        if await self.cache.health_check():
            return {"status": "ok", "message": "缓存读写正常"}
        # 缓存不可用时服务仍可降级运行
        return {"status": "warning", "message": "缓存读写失败"}

    async def detailed(self) -> Dict[str, Any]:
        """
        详细健康检查: 数据库, 缓存, TMS 后端

        整体状态取各项中最差的状态.
        """
        services = {
            "database": await self.check_database(),
            "redis": await self.check_cache(),
            "tms_backend": await self.tms_client.health_check(),
        }
        status = max(
            (service["status"] for service in services.values()),
            key=lambda s: _STATUS_ORDER[s],
        )
        return {"status": status, "timestamp": self._now(), "services": services}
