"""
枚举定义
"""

import enum


class UserRole(str, enum.Enum):
    """系统内置角色"""

    ADMIN = "admin"
    MANAGER = "manager"
    DISPATCHER = "dispatcher"
    DRIVER = "driver"
    CUSTOMER = "customer"


class OrderStatus(str, enum.Enum):
    """订单状态"""

    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    """支付状态"""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


# 订单状态允许的流转, delivered 和 cancelled 为终态
ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.ASSIGNED, OrderStatus.CANCELLED},
    OrderStatus.ASSIGNED: {
        OrderStatus.IN_TRANSIT,
        OrderStatus.PENDING,
        OrderStatus.CANCELLED,
    },
    OrderStatus.IN_TRANSIT: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

# 支付状态允许的流转, paid 为终态
PAYMENT_STATUS_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PAID, PaymentStatus.PENDING},
    PaymentStatus.PAID: set(),
}
