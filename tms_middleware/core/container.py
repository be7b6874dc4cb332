"""
应用容器

启动时创建一次, 持有配置, 数据库引擎, 会话工厂, 缓存和 TMS 客户端.
HTTP 请求和 RPC 消息都通过 services() 获取绑定到独立数据库会话的服务集合.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from tms_middleware.core.cache import CacheService
from tms_middleware.core.config import Settings
from tms_middleware.services.auth_service import AuthService
from tms_middleware.services.health_service import HealthService
from tms_middleware.services.order_service import OrderService
from tms_middleware.services.role_service import RoleService
from tms_middleware.services.tms_client import TmsClient
from tms_middleware.services.user_service import UserService
from tms_middleware.utils.token import TokenService


@dataclass
class Services:
    """单个请求 / 消息使用的服务集合, 共享同一个数据库会话"""

    users: UserService
    roles: RoleService
    orders: OrderService
    tokens: TokenService
    auth: AuthService


def build_services(db: AsyncSession, cache: CacheService, settings: Settings) -> Services:
    users = UserService(db, cache, settings)
    roles = RoleService(db, cache)
    tokens = TokenService(settings, cache, users)
    return Services(
        users=users,
        roles=roles,
        orders=OrderService(db, cache),
        tokens=tokens,
        auth=AuthService(users, roles, tokens),
    )


@dataclass
class AppContainer:
    """进程级共享资源"""

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    redis: Redis
    cache: CacheService
    tms_client: TmsClient

    @property
    def health(self) -> HealthService:
        return HealthService(self.session_factory, self.cache, self.tms_client)

    @asynccontextmanager
    async def services(self) -> AsyncIterator[Services]:
        """创建数据库会话及绑定的服务, 退出时关闭会话"""
        async with self.session_factory() as session:
            yield build_services(session, self.cache, self.settings)
