"""
订单管理路由
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status

from tms_middleware.core.container import Services
from tms_middleware.dependencies.auth import get_services
from tms_middleware.dependencies.permissions import require_operation
from tms_middleware.schemas.auth import TokenClaims
from tms_middleware.schemas.order import (
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
    PaymentStatusUpdate,
)

router = APIRouter(prefix="/orders", tags=["订单管理"])


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    data: OrderCreate,
    _: TokenClaims = Depends(require_operation("order.create")),
    services: Services = Depends(get_services),
):
    """创建订单"""
    return await services.orders.create(data)


@router.get("", response_model=List[OrderResponse])
async def list_orders(
    _: TokenClaims = Depends(require_operation("order.findAll")),
    services: Services = Depends(get_services),
):
    """获取订单列表"""
    return await services.orders.find_all()


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    _: TokenClaims = Depends(require_operation("order.findOne")),
    services: Services = Depends(get_services),
):
    """获取订单详情"""
    return await services.orders.find_by_id(order_id)


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    _: TokenClaims = Depends(require_operation("order.updateStatus")),
    services: Services = Depends(get_services),
):
    """
    更新订单状态

    pending -> assigned -> in_transit -> delivered, 除 delivered 外都可以取消
    """
    return await services.orders.update_status(order_id, data.status)


@router.patch("/{order_id}/payment", response_model=OrderResponse)
async def update_payment_status(
    order_id: str,
    data: PaymentStatusUpdate,
    _: TokenClaims = Depends(require_operation("order.updatePaymentStatus")),
    services: Services = Depends(get_services),
):
    """更新支付状态"""
    return await services.orders.update_payment_status(order_id, data.payment_status)


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(
    order_id: str,
    _: TokenClaims = Depends(require_operation("order.remove")),
    services: Services = Depends(get_services),
):
    """删除订单"""
    await services.orders.remove(order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
