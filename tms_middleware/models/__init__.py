# 导入所有模型，确保 SQLAlchemy 能够识别它们
from tms_middleware.models.user import User
from tms_middleware.models.role import Role
from tms_middleware.models.order import Order
from tms_middleware.models.association import user_roles

__all__ = [
    "User",
    "Role",
    "Order",
    "user_roles",
]
