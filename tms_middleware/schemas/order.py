"""
订单相关的 Pydantic 模型
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from tms_middleware.models.enums import OrderStatus, PaymentStatus
from tms_middleware.schemas.base import BaseResponseModel


class Address(BaseModel):
    """地址, 经纬度可选, 未提供时保持为空"""

    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class OrderCreate(BaseModel):
    """创建订单请求模型"""

    customer_id: str = Field(..., min_length=1)
    driver_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    pickup_address: Address
    delivery_address: Address
    total_amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)


class OrderStatusUpdate(BaseModel):
    """更新订单状态请求模型"""

    status: OrderStatus


class PaymentStatusUpdate(BaseModel):
    """更新支付状态请求模型"""

    payment_status: PaymentStatus


class OrderResponse(BaseResponseModel):
    """订单响应模型"""

    id: str
    customer_id: str
    driver_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    pickup_address: Address
    delivery_address: Address
    status: OrderStatus
    payment_status: PaymentStatus
    total_amount: Decimal
    created_at: datetime
    updated_at: datetime
