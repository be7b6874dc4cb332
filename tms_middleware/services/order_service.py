"""
订单服务
"""

from typing import List

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tms_middleware.core.cache import CacheService
from tms_middleware.core.constants import CacheKeys, CacheTTL
from tms_middleware.core.db import translate_db_errors, utcnow
from tms_middleware.core.exceptions import ConflictError, NotFoundError
from tms_middleware.models import Order
from tms_middleware.models.enums import (
    ORDER_STATUS_TRANSITIONS,
    PAYMENT_STATUS_TRANSITIONS,
    OrderStatus,
    PaymentStatus,
)
from tms_middleware.schemas.order import OrderCreate, OrderResponse
from tms_middleware.utils.cache import clear_order_cache


class OrderService:
    """订单服务类"""

    def __init__(self, db: AsyncSession, cache: CacheService):
        self.db = db
        self.cache = cache

    async def _get_order_or_404(self, order_id: str) -> Order:
        order = await self.db.get(Order, order_id)
        if order is None:
            raise NotFoundError("订单不存在", {"order_id": order_id})
        return order

    @translate_db_errors
    async def create(self, data: OrderCreate) -> OrderResponse:
        """创建订单, 初始状态为 pending, 支付状态为 pending"""
        order = Order(
            customer_id=data.customer_id,
            driver_id=data.driver_id,
            vehicle_id=data.vehicle_id,
            pickup_address=data.pickup_address.model_dump(),
            delivery_address=data.delivery_address.model_dump(),
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            total_amount=data.total_amount,
        )
        self.db.add(order)
        await self.db.commit()

        await clear_order_cache(self.cache)
        logger.info(f"订单创建成功: order_id={order.id}, customer_id={order.customer_id}")
        return OrderResponse.model_validate(order)

    @translate_db_errors
    async def find_all(self) -> List[OrderResponse]:
        """获取全部订单(按创建时间倒序)"""
        key = f"{CacheKeys.ORDER}all"
        cached = await self.cache.get(key)
        if cached is not None:
            return [OrderResponse.model_validate(item) for item in cached]

        result = await self.db.execute(select(Order).order_by(Order.created_at.desc()))
        orders = [OrderResponse.model_validate(order) for order in result.scalars().all()]
        await self.cache.set(key, [order.to_cache() for order in orders], CacheTTL.ORDER)
        return orders

    @translate_db_errors
    async def find_by_id(self, order_id: str) -> OrderResponse:
        """按ID获取订单"""
        key = f"{CacheKeys.ORDER}{order_id}"
        cached = await self.cache.get(key)
        if cached is not None:
            return OrderResponse.model_validate(cached)

        order = OrderResponse.model_validate(await self._get_order_or_404(order_id))
        await self.cache.set(key, order.to_cache(), CacheTTL.ORDER)
        return order

    @translate_db_errors
    async def update_status(self, order_id: str, status: OrderStatus) -> OrderResponse:
        """
        更新订单状态

        重复设置当前状态不做任何修改.

        Raises:
            NotFoundError: 订单不存在
            ConflictError: 不允许的状态流转
        """
        order = await self._get_order_or_404(order_id)
        current = OrderStatus(order.status)
        status = OrderStatus(status)
        if current == status:
            return OrderResponse.model_validate(order)
        if status not in ORDER_STATUS_TRANSITIONS[current]:
            logger.warning(
                f"订单状态流转被拒绝: order_id={order_id}, {current.value} -> {status.value}"
            )
            raise ConflictError(
                f"订单状态不能从 {current.value} 变更为 {status.value}",
                {"from": current.value, "to": status.value},
            )

        order.status = status
        order.updated_at = utcnow()
        await self.db.commit()

        await clear_order_cache(self.cache)
        logger.info(f"订单状态已更新: order_id={order_id}, {current.value} -> {status.value}")
        return OrderResponse.model_validate(order)

    @translate_db_errors
    async def update_payment_status(
        self, order_id: str, payment_status: PaymentStatus
    ) -> OrderResponse:
        """
        更新支付状态

        Raises:
            NotFoundError: 订单不存在
            ConflictError: 不允许的状态流转(paid 之后不能再修改)
        """
        order = await self._get_order_or_404(order_id)
        current = PaymentStatus(order.payment_status)
        payment_status = PaymentStatus(payment_status)
        if current == payment_status:
            return OrderResponse.model_validate(order)
        if payment_status not in PAYMENT_STATUS_TRANSITIONS[current]:
            logger.warning(
                f"支付状态流转被拒绝: order_id={order_id}, "
                f"{current.value} -> {payment_status.value}"
            )
            raise ConflictError(
                f"支付状态不能从 {current.value} 变更为 {payment_status.value}",
                {"from": current.value, "to": payment_status.value},
            )

        order.payment_status = payment_status
        order.updated_at = utcnow()
        await self.db.commit()

        await clear_order_cache(self.cache)
        logger.info(
            f"支付状态已更新: order_id={order_id}, "
            f"{current.value} -> {payment_status.value}"
        )
        return OrderResponse.model_validate(order)

    @translate_db_errors
    async def remove(self, order_id: str):
        """删除订单"""
        order = await self._get_order_or_404(order_id)
        await self.db.delete(order)
        await self.db.commit()

        await clear_order_cache(self.cache)
        logger.info(f"订单删除成功: order_id={order_id}")
