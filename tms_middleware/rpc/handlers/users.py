"""
用户相关的 RPC 处理函数
"""

from tms_middleware.rpc.router import RpcContext, RpcRouter
from tms_middleware.schemas.base import MessageResponse
from tms_middleware.schemas.rpc import (
    EmailPayload,
    IdPayload,
    NamePayload,
    UpdateUserPayload,
    UserStatusPayload,
)
from tms_middleware.schemas.user import PasswordChange, UserCreate

router = RpcRouter()


@router.message_pattern("user.create")
async def create(ctx: RpcContext):
    return await ctx.services.users.create(UserCreate.model_validate(ctx.data))


@router.message_pattern("user.findAll")
async def find_all(ctx: RpcContext):
    return await ctx.services.users.find_all()


@router.message_pattern("user.findById")
async def find_by_id(ctx: RpcContext):
    return await ctx.services.users.find_by_id(IdPayload.model_validate(ctx.data).id)


@router.message_pattern("user.findByEmail")
async def find_by_email(ctx: RpcContext):
    email = EmailPayload.model_validate(ctx.data).email
    return await ctx.services.users.find_by_email(email)


@router.message_pattern("user.update")
async def update(ctx: RpcContext):
    data = UpdateUserPayload.model_validate(ctx.data)
    return await ctx.services.users.update(data.id, data.update)


@router.message_pattern("user.delete")
async def delete(ctx: RpcContext):
    await ctx.services.users.remove(IdPayload.model_validate(ctx.data).id)
    return MessageResponse(message="用户删除成功")


@router.message_pattern("user.getUserPermissions")
async def get_user_permissions(ctx: RpcContext):
    user_id = IdPayload.model_validate(ctx.data).id
    return await ctx.services.users.get_user_permissions(user_id)


@router.message_pattern("user.changePassword")
async def change_password(ctx: RpcContext):
    """只能修改调用者自己的密码"""
    data = PasswordChange.model_validate(ctx.data)
    await ctx.services.users.change_password(
        ctx.claims.sub, data.old_password, data.new_password
    )
    return MessageResponse(message="密码修改成功")


@router.message_pattern("user.setActive")
async def set_active(ctx: RpcContext):
    data = UserStatusPayload.model_validate(ctx.data)
    return await ctx.services.users.set_active(data.id, data.is_active)


@router.message_pattern("user.findByRole")
async def find_by_role(ctx: RpcContext):
    name = NamePayload.model_validate(ctx.data).name
    return await ctx.services.users.get_users_by_role(name)
