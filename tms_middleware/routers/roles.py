"""
角色管理路由
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status

from tms_middleware.core.container import Services
from tms_middleware.dependencies.auth import get_services
from tms_middleware.dependencies.permissions import require_operation
from tms_middleware.schemas.auth import TokenClaims
from tms_middleware.schemas.role import (
    PermissionsPayload,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
)
from tms_middleware.schemas.user import RoleMembersResponse

router = APIRouter(prefix="/roles", tags=["角色管理"])


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    data: RoleCreate,
    _: TokenClaims = Depends(require_operation("role.create")),
    services: Services = Depends(get_services),
):
    """创建角色(需要 admin 角色)"""
    return await services.roles.create(data)


@router.get("", response_model=List[RoleResponse])
async def list_roles(
    _: TokenClaims = Depends(require_operation("role.findAll")),
    services: Services = Depends(get_services),
):
    """获取角色列表"""
    return await services.roles.find_all()


@router.get("/permissions", response_model=List[str])
async def list_permissions(
    _: TokenClaims = Depends(require_operation("role.getAllPermissions")),
    services: Services = Depends(get_services),
):
    """获取所有角色中出现过的权限"""
    return await services.roles.get_all_permissions()


@router.get("/permission/{permission}", response_model=List[RoleResponse])
async def get_roles_by_permission(
    permission: str,
    _: TokenClaims = Depends(require_operation("role.findByPermission")),
    services: Services = Depends(get_services),
):
    """获取拥有指定权限的角色"""
    return await services.roles.get_roles_by_permission(permission)


@router.get("/name/{name}", response_model=RoleResponse)
async def get_role_by_name(
    name: str,
    _: TokenClaims = Depends(require_operation("role.findByName")),
    services: Services = Depends(get_services),
):
    """按名称获取角色"""
    return await services.roles.find_by_name(name)


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: str,
    _: TokenClaims = Depends(require_operation("role.findById")),
    services: Services = Depends(get_services),
):
    """获取角色详情"""
    return await services.roles.find_by_id(role_id)


@router.patch("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    data: RoleUpdate,
    _: TokenClaims = Depends(require_operation("role.update")),
    services: Services = Depends(get_services),
):
    """
    更新角色(需要 admin 角色)

    系统角色不允许改名
    """
    return await services.roles.update(role_id, data)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    _: TokenClaims = Depends(require_operation("role.delete")),
    services: Services = Depends(get_services),
):
    """
    删除角色(需要 admin 角色)

    系统角色和仍被用户使用的角色不允许删除
    """
    await services.roles.remove(role_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{role_id}/permissions", response_model=RoleResponse)
async def add_permissions(
    role_id: str,
    data: PermissionsPayload,
    _: TokenClaims = Depends(require_operation("role.addPermissions")),
    services: Services = Depends(get_services),
):
    """为角色追加权限"""
    return await services.roles.add_permissions(role_id, data.permissions)


@router.delete("/{role_id}/permissions", response_model=RoleResponse)
async def remove_permissions(
    role_id: str,
    data: PermissionsPayload,
    _: TokenClaims = Depends(require_operation("role.removePermissions")),
    services: Services = Depends(get_services),
):
    """移除角色的指定权限"""
    return await services.roles.remove_permissions(role_id, data.permissions)


@router.put("/{role_id}/permissions", response_model=RoleResponse)
async def set_permissions(
    role_id: str,
    data: PermissionsPayload,
    _: TokenClaims = Depends(require_operation("role.setPermissions")),
    services: Services = Depends(get_services),
):
    """整体替换角色的权限"""
    return await services.roles.set_permissions(role_id, data.permissions)


@router.get("/{role_id}/users", response_model=RoleMembersResponse)
async def get_role_users(
    role_id: str,
    _: TokenClaims = Depends(require_operation("role.getUsersWithRole")),
    services: Services = Depends(get_services),
):
    """获取角色及其成员"""
    return await services.roles.get_users_with_role(role_id)
