"""
认证相关的 RPC 处理函数
"""

from tms_middleware.rpc.router import RpcContext, RpcRouter
from tms_middleware.schemas.auth import (
    LoginRequest,
    LogoutRequest,
    TokenRefresh,
    TokenValidationResponse,
    UserRegister,
)
from tms_middleware.schemas.base import MessageResponse

router = RpcRouter()


@router.message_pattern("auth.login", protected=False)
async def login(ctx: RpcContext):
    data = LoginRequest.model_validate(ctx.data)
    return await ctx.services.auth.login(data.email, data.password)


@router.message_pattern("auth.register", protected=False)
async def register(ctx: RpcContext):
    return await ctx.services.auth.register(UserRegister.model_validate(ctx.data))


@router.message_pattern("auth.refresh", protected=False)
async def refresh(ctx: RpcContext):
    data = TokenRefresh.model_validate(ctx.data)
    return await ctx.services.auth.refresh(data.refresh_token)


@router.message_pattern("auth.validateUser", protected=False)
async def validate_user(ctx: RpcContext):
    """校验邮箱和密码, 失败时返回 null"""
    data = LoginRequest.model_validate(ctx.data)
    return await ctx.services.auth.validate_user(data.email, data.password)


@router.message_pattern("auth.validate")
async def validate(ctx: RpcContext):
    return TokenValidationResponse(valid=True, user=ctx.claims)


@router.message_pattern("auth.getProfile")
async def get_profile(ctx: RpcContext):
    return await ctx.services.auth.get_profile(ctx.claims.sub)


@router.message_pattern("auth.logout")
async def logout(ctx: RpcContext):
    data = LogoutRequest.model_validate(ctx.data)
    await ctx.services.auth.logout(ctx.token, data.refresh_token)
    return MessageResponse(message="登出成功")
