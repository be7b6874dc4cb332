"""
订单数据库模型
"""

import uuid

from sqlalchemy import JSON, Column, Enum, Integer, Numeric, String, DateTime
from sqlalchemy.dialects.postgresql import JSONB

from tms_middleware.core.db import Base, utcnow
from tms_middleware.models.enums import OrderStatus, PaymentStatus

# 地址以 JSON 结构整体存储: street, city, state, zip_code, country, latitude, longitude
AddressType = JSON().with_variant(JSONB, "postgresql")


class Order(Base):
    """订单模型"""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = Column(String(36), nullable=False, index=True)
    driver_id = Column(String(36), nullable=True, index=True)
    vehicle_id = Column(String(36), nullable=True)
    pickup_address = Column(AddressType, nullable=False)
    delivery_address = Column(AddressType, nullable=False)
    status = Column(
        Enum(OrderStatus, name="order_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    payment_status = Column(
        Enum(PaymentStatus, name="payment_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        comment="更新时间",
    )
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Order(id={self.id}, status={self.status})>"
