"""
RPC 消息路由

按消息模式(pattern)注册处理函数, 用法与 FastAPI 的 APIRouter 类似:

    router = RpcRouter()

    @router.message_pattern("user.findAll")
    async def find_all(ctx: RpcContext):
        return await ctx.services.users.find_all()

受保护的模式要求 data.token 携带 Access Token, 并按模式名称做授权检查.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from tms_middleware.core.authorization import authorize
from tms_middleware.core.container import AppContainer, Services
from tms_middleware.core.exceptions import NotFoundError, UnauthenticatedError
from tms_middleware.schemas.auth import TokenClaims


@dataclass
class RpcContext:
    """单条消息的处理上下文"""

    data: Any
    services: Services
    container: AppContainer
    claims: Optional[TokenClaims] = None

    @property
    def token(self) -> Optional[str]:
        if isinstance(self.data, dict):
            return self.data.get("token")
        return None


HandlerFunc = Callable[[RpcContext], Awaitable[Any]]


@dataclass
class RpcHandler:
    pattern: str
    func: HandlerFunc
    protected: bool


class RpcRouter:
    """消息模式注册表"""

    def __init__(self):
        self.handlers: Dict[str, RpcHandler] = {}

    def message_pattern(self, pattern: str, protected: bool = True):
        """
        注册消息处理函数

        Args:
            pattern: 消息模式, 如 "user.findAll"
            protected: 是否需要 Token 认证和授权
        """

        def decorator(func: HandlerFunc) -> HandlerFunc:
            if pattern in self.handlers:
                raise ValueError(f"消息模式重复注册: {pattern}")
            self.handlers[pattern] = RpcHandler(pattern, func, protected)
            return func

        return decorator

    def include_router(self, other: "RpcRouter"):
        for handler in other.handlers.values():
            if handler.pattern in self.handlers:
                raise ValueError(f"消息模式重复注册: {handler.pattern}")
            self.handlers[handler.pattern] = handler

    def get(self, pattern: str) -> Optional[RpcHandler]:
        return self.handlers.get(pattern)


class RpcDispatcher:
    """按模式分发消息, 每条消息使用独立的数据库会话"""

    def __init__(self, container: AppContainer, router: RpcRouter):
        self.container = container
        self.router = router

    async def dispatch(self, pattern: str, data: Any) -> Any:
        """
        Raises:
            NotFoundError: 未知的消息模式
            UnauthenticatedError / ForbiddenError: 认证或授权失败
            以及处理函数抛出的业务异常
        """
        handler = self.router.get(pattern)
        if handler is None:
            raise NotFoundError(f"未知的消息模式: {pattern}", {"pattern": pattern})

        async with self.container.services() as services:
            ctx = RpcContext(
                data=data if data is not None else {},
                services=services,
                container=self.container,
            )
            if handler.protected:
                if not ctx.token:
                    raise UnauthenticatedError("缺少认证 Token")
                ctx.claims = await services.tokens.verify_access(ctx.token)
                authorize(ctx.claims, pattern)
            return await handler.func(ctx)
