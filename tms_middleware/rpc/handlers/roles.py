"""
角色相关的 RPC 处理函数
"""

from tms_middleware.rpc.router import RpcContext, RpcRouter
from tms_middleware.schemas.base import MessageResponse
from tms_middleware.schemas.role import RoleCreate
from tms_middleware.schemas.rpc import (
    IdPayload,
    NamePayload,
    PermissionPayload,
    RolePermissionsPayload,
    UpdateRolePayload,
)

router = RpcRouter()


@router.message_pattern("role.create")
async def create(ctx: RpcContext):
    return await ctx.services.roles.create(RoleCreate.model_validate(ctx.data))


@router.message_pattern("role.findAll")
async def find_all(ctx: RpcContext):
    return await ctx.services.roles.find_all()


@router.message_pattern("role.findById")
async def find_by_id(ctx: RpcContext):
    return await ctx.services.roles.find_by_id(IdPayload.model_validate(ctx.data).id)


@router.message_pattern("role.findByName")
async def find_by_name(ctx: RpcContext):
    name = NamePayload.model_validate(ctx.data).name
    return await ctx.services.roles.find_by_name(name)


@router.message_pattern("role.update")
async def update(ctx: RpcContext):
    data = UpdateRolePayload.model_validate(ctx.data)
    return await ctx.services.roles.update(data.id, data.update)


@router.message_pattern("role.delete")
async def delete(ctx: RpcContext):
    await ctx.services.roles.remove(IdPayload.model_validate(ctx.data).id)
    return MessageResponse(message="角色删除成功")


@router.message_pattern("role.addPermissions")
async def add_permissions(ctx: RpcContext):
    data = RolePermissionsPayload.model_validate(ctx.data)
    return await ctx.services.roles.add_permissions(data.id, data.permissions)


@router.message_pattern("role.removePermissions")
async def remove_permissions(ctx: RpcContext):
    data = RolePermissionsPayload.model_validate(ctx.data)
    return await ctx.services.roles.remove_permissions(data.id, data.permissions)


@router.message_pattern("role.setPermissions")
async def set_permissions(ctx: RpcContext):
    data = RolePermissionsPayload.model_validate(ctx.data)
    return await ctx.services.roles.set_permissions(data.id, data.permissions)


@router.message_pattern("role.getUsersWithRole")
async def get_users_with_role(ctx: RpcContext):
    role_id = IdPayload.model_validate(ctx.data).id
    return await ctx.services.roles.get_users_with_role(role_id)


@router.message_pattern("role.getAllPermissions")
async def get_all_permissions(ctx: RpcContext):
    return await ctx.services.roles.get_all_permissions()


@router.message_pattern("role.findByPermission")
async def find_by_permission(ctx: RpcContext):
    permission = PermissionPayload.model_validate(ctx.data).permission
    return await ctx.services.roles.get_roles_by_permission(permission)
