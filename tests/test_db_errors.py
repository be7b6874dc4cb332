import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from tms_middleware.core.exceptions import (
    AlreadyExistsError,
    ConflictError,
    UnavailableError,
)
from tms_middleware.models.role import Role
from tms_middleware.models.user import User
from tms_middleware.schemas.role import RoleCreate, RoleUpdate
from tms_middleware.schemas.user import UserCreate
from tms_middleware.services.role_service import RoleService
from tms_middleware.services.user_service import UserService
from tests.conftest import DEFAULT_PASSWORD


async def _never_found(self, value):
    # 模拟并发请求: 唯一性预检查时另一条记录尚未提交
    return None


async def test_duplicate_email_race_is_already_exists(services, db, make_user, monkeypatch):
    await make_user("race@tms.com", "customer")
    monkeypatch.setattr(UserService, "_get_by_email", _never_found)

    with pytest.raises(AlreadyExistsError):
        await services.users.create(
            UserCreate(
                email="race@tms.com",
                password=DEFAULT_PASSWORD,
                first_name="Test",
                last_name="User",
            )
        )

    # 回滚后会话仍可继续使用
    count = await db.scalar(
        select(func.count()).select_from(User).where(User.email == "race@tms.com")
    )
    assert count == 1


async def test_duplicate_role_name_race_is_already_exists(services, seeded, monkeypatch):
    monkeypatch.setattr(RoleService, "_get_by_name", _never_found)

    with pytest.raises(AlreadyExistsError):
        await services.roles.create(RoleCreate(name="dispatcher"))

    assert (await services.roles.find_by_id(seeded["dispatcher"])).name == "dispatcher"


async def test_stale_version_is_a_conflict(services, seeded, session_factory, monkeypatch):
    load_role = RoleService._get_role_or_404

    async def _load_then_bump(self, role_id):
        role = await load_role(self, role_id)
        # 另一个会话在本次读取之后提交了修改
        async with session_factory() as other:
            await other.execute(
                update(Role).where(Role.id == role_id).values(version=Role.version + 1)
            )
            await other.commit()
        return role

    monkeypatch.setattr(RoleService, "_get_role_or_404", _load_then_bump)

    with pytest.raises(ConflictError):
        await services.roles.update(seeded["dispatcher"], RoleUpdate(description="调度"))

    monkeypatch.setattr(RoleService, "_get_role_or_404", load_role)
    role = await services.roles.update(seeded["dispatcher"], RoleUpdate(description="调度"))
    assert role.description == "调度"


async def test_operational_error_is_unavailable(services, db, seeded, monkeypatch):
    async def _database_down(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(db, "execute", _database_down)

    with pytest.raises(UnavailableError):
        await services.users.find_all()
