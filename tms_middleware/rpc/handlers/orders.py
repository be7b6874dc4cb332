"""
订单相关的 RPC 处理函数

调用者角色来自已验证的 Token, 不信任消息中携带的角色字段.
"""

from tms_middleware.rpc.router import RpcContext, RpcRouter
from tms_middleware.schemas.base import MessageResponse
from tms_middleware.schemas.rpc import (
    CreateOrderPayload,
    IdPayload,
    UpdateOrderStatusPayload,
    UpdatePaymentStatusPayload,
)

router = RpcRouter()


@router.message_pattern("order.create")
async def create(ctx: RpcContext):
    data = CreateOrderPayload.model_validate(ctx.data)
    return await ctx.services.orders.create(data.order)


@router.message_pattern("order.findAll")
async def find_all(ctx: RpcContext):
    return await ctx.services.orders.find_all()


@router.message_pattern("order.findOne")
async def find_one(ctx: RpcContext):
    return await ctx.services.orders.find_by_id(IdPayload.model_validate(ctx.data).id)


@router.message_pattern("order.updateStatus")
async def update_status(ctx: RpcContext):
    data = UpdateOrderStatusPayload.model_validate(ctx.data)
    return await ctx.services.orders.update_status(data.id, data.update.status)


@router.message_pattern("order.updatePaymentStatus")
async def update_payment_status(ctx: RpcContext):
    data = UpdatePaymentStatusPayload.model_validate(ctx.data)
    return await ctx.services.orders.update_payment_status(
        data.id, data.update.payment_status
    )


@router.message_pattern("order.remove")
async def remove(ctx: RpcContext):
    await ctx.services.orders.remove(IdPayload.model_validate(ctx.data).id)
    return MessageResponse(message="订单删除成功")
