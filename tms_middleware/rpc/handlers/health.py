"""
健康检查 RPC 处理函数
"""

from tms_middleware.rpc.router import RpcContext, RpcRouter

router = RpcRouter()


@router.message_pattern("health.check", protected=False)
async def check(ctx: RpcContext):
    """data.detailed 为真时返回数据库, 缓存, TMS 后端的详细状态"""
    if isinstance(ctx.data, dict) and ctx.data.get("detailed"):
        return await ctx.container.health.detailed()
    return await ctx.container.health.check()
