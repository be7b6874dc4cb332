import pytest

from tms_middleware.core.exceptions import (
    AlreadyExistsError,
    BadRequestError,
    ConflictError,
    NotFoundError,
)
from tms_middleware.schemas.role import RoleCreate, RoleUpdate


async def test_create_role_dedupes_permissions(services, seeded):
    role = await services.roles.create(
        RoleCreate(name="auditor", permissions=["report:read", " report:read ", "", "log:read"])
    )
    assert role.permissions == ["report:read", "log:read"]
    assert (await services.roles.find_by_name("AUDITOR")).id == role.id


async def test_create_duplicate_name_ignores_case(services, seeded):
    with pytest.raises(AlreadyExistsError):
        await services.roles.create(RoleCreate(name="Driver"))


async def test_find_missing_role(services, seeded):
    with pytest.raises(NotFoundError):
        await services.roles.find_by_id("missing")
    with pytest.raises(NotFoundError):
        await services.roles.find_by_name("pilot")


async def test_protected_role_cannot_be_deleted_or_renamed(services, seeded):
    with pytest.raises(ConflictError):
        await services.roles.remove(seeded["admin"])
    with pytest.raises(ConflictError):
        await services.roles.update(seeded["admin"], RoleUpdate(name="root"))

    # 描述和权限仍可修改
    role = await services.roles.update(
        seeded["admin"], RoleUpdate(description="超级用户")
    )
    assert role.name == "admin"
    assert role.description == "超级用户"


async def test_rename_to_existing_name(services, seeded):
    with pytest.raises(AlreadyExistsError):
        await services.roles.update(seeded["driver"], RoleUpdate(name="Customer"))


async def test_role_in_use_cannot_be_deleted(services, seeded, make_user):
    await make_user("driver@tms.com", "driver")
    with pytest.raises(ConflictError) as exc_info:
        await services.roles.remove(seeded["driver"])
    assert exc_info.value.details["users"] == 1


async def test_unused_role_can_be_deleted(services, seeded):
    role = await services.roles.create(RoleCreate(name="temp"))
    await services.roles.remove(role.id)
    with pytest.raises(NotFoundError):
        await services.roles.find_by_id(role.id)


async def test_add_remove_and_set_permissions(services, seeded):
    role_id = seeded["driver"]

    role = await services.roles.add_permissions(role_id, ["vehicle:read", "order:read"])
    assert role.permissions == ["order:read", "order:update", "vehicle:read"]

    role = await services.roles.remove_permissions(role_id, ["order:update", "unknown"])
    assert role.permissions == ["order:read", "vehicle:read"]

    role = await services.roles.set_permissions(role_id, ["a", "b", "a"])
    assert role.permissions == ["a", "b"]
    assert await services.roles.has_permission(role_id, "a")
    assert not await services.roles.has_permission(role_id, "order:read")


async def test_add_empty_permissions_is_rejected(services, seeded):
    with pytest.raises(BadRequestError):
        await services.roles.add_permissions(seeded["driver"], ["", "  "])


async def test_permission_change_reaches_role_members(services, seeded, make_user):
    dispatcher = await make_user("dispatcher@tms.com", "dispatcher")
    before = await services.users.get_user_permissions(dispatcher.id)
    assert "report:read" not in before

    await services.roles.add_permissions(seeded["dispatcher"], ["report:read"])
    after = await services.users.get_user_permissions(dispatcher.id)
    assert "report:read" in after

    await services.roles.remove_permissions(seeded["dispatcher"], ["report:read"])
    assert await services.users.get_user_permissions(dispatcher.id) == before


async def test_get_users_with_role(services, seeded, make_user):
    await make_user("c1@tms.com", "customer")
    await make_user("c2@tms.com", "customer")

    members = await services.roles.get_users_with_role(seeded["customer"])
    assert members.name == "customer"
    assert [user.email for user in members.users] == ["c1@tms.com", "c2@tms.com"]


async def test_get_all_permissions(services, seeded):
    permissions = await services.roles.get_all_permissions()
    assert permissions == sorted(set(permissions))
    assert "system:logs" in permissions

    await services.roles.create(RoleCreate(name="auditor", permissions=["report:read"]))
    assert "report:read" in await services.roles.get_all_permissions()


async def test_get_roles_by_permission(services, seeded):
    roles = await services.roles.get_roles_by_permission("order:create")
    assert [role.name for role in roles] == ["admin", "customer", "dispatcher", "manager"]
    assert await services.roles.get_roles_by_permission("nothing") == []


async def test_permission_change_during_cache_cooldown_reaches_members(
    services, seeded, make_user, cache_blip
):
    dispatcher = await make_user("dispatcher@tms.com", "dispatcher")
    assert "report:read" not in await services.users.get_user_permissions(dispatcher.id)
    recover = await cache_blip()

    await services.roles.add_permissions(seeded["dispatcher"], ["report:read"])
    recover()

    assert "report:read" in await services.users.get_user_permissions(dispatcher.id)
