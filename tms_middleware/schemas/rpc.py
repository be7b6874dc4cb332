"""
RPC 消息相关的 Pydantic 模型
"""

from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from tms_middleware.schemas.order import OrderCreate, OrderStatusUpdate, PaymentStatusUpdate
from tms_middleware.schemas.role import RoleUpdate
from tms_middleware.schemas.user import UserUpdate


class RpcRequest(BaseModel):
    """请求消息, 没有 id 的消息视为事件, 不回复"""

    pattern: str = Field(..., min_length=1)
    data: Any = None
    id: Optional[str] = None


class IdPayload(BaseModel):
    id: str = Field(..., min_length=1)


class EmailPayload(BaseModel):
    email: str = Field(..., min_length=1)


class NamePayload(BaseModel):
    name: str = Field(..., min_length=1)


class PermissionPayload(BaseModel):
    permission: str = Field(..., min_length=1)


class RolePermissionsPayload(IdPayload):
    permissions: List[str]


class UserStatusPayload(IdPayload):
    is_active: bool


class UpdateUserPayload(IdPayload):
    model_config = ConfigDict(populate_by_name=True)

    update: UserUpdate = Field(..., alias="updateUserDto")


class UpdateRolePayload(IdPayload):
    model_config = ConfigDict(populate_by_name=True)

    update: RoleUpdate = Field(..., alias="updateRoleDto")


class CreateOrderPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order: OrderCreate = Field(..., alias="createOrderDto")


class UpdateOrderStatusPayload(IdPayload):
    model_config = ConfigDict(populate_by_name=True)

    update: OrderStatusUpdate = Field(..., alias="updateOrderStatusDto")


class UpdatePaymentStatusPayload(IdPayload):
    model_config = ConfigDict(populate_by_name=True)

    update: PaymentStatusUpdate = Field(..., alias="updatePaymentStatusDto")
