"""
用户管理路由
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status

from tms_middleware.core.container import Services
from tms_middleware.dependencies.auth import get_services
from tms_middleware.dependencies.permissions import require_operation
from tms_middleware.schemas.auth import TokenClaims
from tms_middleware.schemas.base import MessageResponse
from tms_middleware.schemas.user import (
    PasswordChange,
    UserCreate,
    UserResponse,
    UserStatusUpdate,
    UserUpdate,
)

router = APIRouter(prefix="/users", tags=["用户管理"])


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: UserCreate,
    _: TokenClaims = Depends(require_operation("user.create")),
    services: Services = Depends(get_services),
):
    """创建用户(需要 admin 角色)"""
    return await services.users.create(data)


@router.get("", response_model=List[UserResponse])
async def list_users(
    _: TokenClaims = Depends(require_operation("user.findAll")),
    services: Services = Depends(get_services),
):
    """获取用户列表(需要 admin 角色)"""
    return await services.users.find_all()


@router.post("/me/password", response_model=MessageResponse)
async def change_password(
    data: PasswordChange,
    claims: TokenClaims = Depends(require_operation("user.changePassword")),
    services: Services = Depends(get_services),
):
    """
    修改当前用户密码

    需要提供旧密码, 修改后已签发的 Token 在过期前仍然有效
    """
    await services.users.change_password(claims.sub, data.old_password, data.new_password)
    return MessageResponse(message="密码修改成功")


@router.get("/email/{email}", response_model=UserResponse)
async def get_user_by_email(
    email: str,
    _: TokenClaims = Depends(require_operation("user.findByEmail")),
    services: Services = Depends(get_services),
):
    """按邮箱获取用户"""
    return await services.users.find_by_email(email)


@router.get("/role/{role_name}", response_model=List[UserResponse])
async def get_users_by_role(
    role_name: str,
    _: TokenClaims = Depends(require_operation("user.findByRole")),
    services: Services = Depends(get_services),
):
    """获取拥有指定角色的用户"""
    return await services.users.get_users_by_role(role_name)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    _: TokenClaims = Depends(require_operation("user.findById")),
    services: Services = Depends(get_services),
):
    """获取用户详情"""
    return await services.users.find_by_id(user_id)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    data: UserUpdate,
    _: TokenClaims = Depends(require_operation("user.update")),
    services: Services = Depends(get_services),
):
    """
    更新用户信息(需要 admin 角色)

    - 只修改请求中出现的字段
    - role_ids 整体替换用户角色
    - 不能禁用最后一个管理员, 也不能移除其管理员角色
    """
    return await services.users.update(user_id, data)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    _: TokenClaims = Depends(require_operation("user.delete")),
    services: Services = Depends(get_services),
):
    """删除用户(需要 admin 角色, 不能删除最后一个管理员)"""
    await services.users.remove(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{user_id}/permissions", response_model=List[str])
async def get_user_permissions(
    user_id: str,
    _: TokenClaims = Depends(require_operation("user.getUserPermissions")),
    services: Services = Depends(get_services),
):
    """获取用户的聚合权限"""
    return await services.users.get_user_permissions(user_id)


@router.patch("/{user_id}/status", response_model=UserResponse)
async def set_user_status(
    user_id: str,
    data: UserStatusUpdate,
    _: TokenClaims = Depends(require_operation("user.setActive")),
    services: Services = Depends(get_services),
):
    """启用 / 禁用用户"""
    return await services.users.set_active(user_id, data.is_active)
