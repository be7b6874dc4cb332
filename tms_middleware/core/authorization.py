"""
授权检查

每个受保护的操作显式列出允许的角色, 没有角色继承关系.
HTTP 路由和 RPC 处理函数使用同一份操作名称(与 RPC pattern 一致).

- 值为 None: 任何已认证的用户都可以调用
- 未登记的操作一律拒绝
"""

from typing import Dict, FrozenSet, Iterable, Optional

from loguru import logger

from tms_middleware.core.exceptions import ForbiddenError, UnauthenticatedError
from tms_middleware.schemas.auth import TokenClaims

ADMIN = frozenset({"admin", "super-admin"})
MANAGEMENT = ADMIN | {"manager"}
DISPATCH = MANAGEMENT | {"dispatcher"}

OPERATION_ROLES: Dict[str, Optional[FrozenSet[str]]] = {
    # 认证
    "auth.getProfile": None,
    "auth.logout": None,
    "auth.validate": None,
    # 用户
    "user.create": ADMIN,
    "user.findAll": ADMIN,
    "user.findById": MANAGEMENT,
    "user.findByEmail": MANAGEMENT,
    "user.update": ADMIN,
    "user.delete": ADMIN,
    "user.getUserPermissions": MANAGEMENT,
    "user.setActive": ADMIN,
    "user.findByRole": MANAGEMENT,
    "user.changePassword": None,
    # 角色
    "role.create": ADMIN,
    "role.findAll": MANAGEMENT,
    "role.findById": MANAGEMENT,
    "role.findByName": MANAGEMENT,
    "role.update": ADMIN,
    "role.delete": ADMIN,
    "role.addPermissions": ADMIN,
    "role.removePermissions": ADMIN,
    "role.setPermissions": ADMIN,
    "role.getUsersWithRole": MANAGEMENT,
    "role.getAllPermissions": MANAGEMENT,
    "role.findByPermission": MANAGEMENT,
    # 订单
    "order.create": DISPATCH | {"customer"},
    "order.findAll": DISPATCH,
    "order.findOne": DISPATCH | {"driver", "customer"},
    "order.updateStatus": DISPATCH | {"driver"},
    "order.updatePaymentStatus": MANAGEMENT,
    "order.remove": MANAGEMENT,
}


def authorize_roles(claims: Optional[TokenClaims], roles: Optional[Iterable[str]]):
    """
    检查调用者是否拥有任一允许的角色(不区分大小写)

    Args:
        claims: 已验证的 Token 声明, 为空表示未认证
        roles: 允许的角色, 为 None 表示任何已认证用户都可以

    Raises:
        UnauthenticatedError: 未认证
        ForbiddenError: 角色不匹配
    """
    if claims is None:
        raise UnauthenticatedError("缺少认证 Token")
    if roles is None:
        return

    allowed = {role.lower() for role in roles}
    held = {role.lower() for role in claims.roles}
    if allowed.isdisjoint(held):
        logger.warning(
            f"权限不足: user_id={claims.sub}, roles={sorted(held)}, 需要={sorted(allowed)}"
        )
        raise ForbiddenError("权限不足", {"required_roles": sorted(allowed)})


def authorize(claims: Optional[TokenClaims], operation: str):
    """
    按操作名称检查权限

    Raises:
        UnauthenticatedError: 未认证
        ForbiddenError: 角色不匹配, 或操作未登记
    """
    if claims is None:
        raise UnauthenticatedError("缺少认证 Token")
    if operation not in OPERATION_ROLES:
        logger.warning(f"拒绝未登记的操作: {operation}, user_id={claims.sub}")
        raise ForbiddenError("操作未授权", {"operation": operation})
    authorize_roles(claims, OPERATION_ROLES[operation])
