"""
角色服务

角色的增删改查和角色权限维护.
角色变化会影响用户的聚合权限, 所以任何写操作都同时清除 roles: 和 users: 缓存.
"""

from typing import List

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tms_middleware.core.cache import CacheService
from tms_middleware.core.constants import PROTECTED_ROLE_NAMES, CacheKeys, CacheTTL
from tms_middleware.core.db import translate_db_errors, utcnow
from tms_middleware.core.exceptions import (
    AlreadyExistsError,
    BadRequestError,
    ConflictError,
    NotFoundError,
)
from tms_middleware.models import Role, User, user_roles
from tms_middleware.schemas.role import (
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    normalize_permissions,
)
from tms_middleware.schemas.user import RoleMembersResponse, UserSummary
from tms_middleware.utils.cache import clear_role_cache


def is_protected_role(name: str) -> bool:
    return name.lower() in PROTECTED_ROLE_NAMES


class RoleService:
    """角色服务类"""

    def __init__(self, db: AsyncSession, cache: CacheService):
        self.db = db
        self.cache = cache

    async def _get_role_or_404(self, role_id: str) -> Role:
        role = await self.db.get(Role, role_id)
        if role is None:
            raise NotFoundError("角色不存在", {"role_id": role_id})
        return role

    async def _get_by_name(self, name: str):
        result = await self.db.execute(
            select(Role).where(func.lower(Role.name) == name.strip().lower())
        )
        return result.scalar_one_or_none()

    async def _save_permissions(self, role: Role, permissions: List[str], action: str):
        # JSON 列需要整体赋值新列表, 原地修改不会被识别为变更
        role.permissions = list(permissions)
        role.updated_at = utcnow()
        await self.db.commit()
        await clear_role_cache(self.cache)
        logger.info(
            f"角色权限已{action}: role_id={role.id}, name={role.name}, "
            f"permissions={role.permissions}"
        )
        return RoleResponse.model_validate(role)

    @translate_db_errors
    async def create(self, data: RoleCreate) -> RoleResponse:
        """
        创建角色

        Raises:
            AlreadyExistsError: 角色名称已存在(不区分大小写)
        """
        name = data.name.strip()
        if await self._get_by_name(name) is not None:
            logger.warning(f"创建角色失败: 角色名已存在 - {name}")
            raise AlreadyExistsError("角色名称已存在", {"name": name})

        role = Role(name=name, description=data.description, permissions=data.permissions)
        self.db.add(role)
        await self.db.commit()

        await clear_role_cache(self.cache)
        logger.info(f"角色创建成功: role_id={role.id}, name={name}")
        return RoleResponse.model_validate(role)

    @translate_db_errors
    async def find_all(self) -> List[RoleResponse]:
        """获取全部角色"""
        key = f"{CacheKeys.ROLE}all"
        cached = await self.cache.get(key)
        if cached is not None:
            return [RoleResponse.model_validate(item) for item in cached]

        result = await self.db.execute(select(Role).order_by(Role.name))
        roles = [RoleResponse.model_validate(role) for role in result.scalars().all()]
        await self.cache.set(key, [role.to_cache() for role in roles], CacheTTL.ROLE)
        return roles

    @translate_db_errors
    async def find_by_id(self, role_id: str) -> RoleResponse:
        """按ID获取角色"""
        key = f"{CacheKeys.ROLE}{role_id}"
        cached = await self.cache.get(key)
        if cached is not None:
            return RoleResponse.model_validate(cached)

        role = RoleResponse.model_validate(await self._get_role_or_404(role_id))
        await self.cache.set(key, role.to_cache(), CacheTTL.ROLE)
        return role

    @translate_db_errors
    async def find_by_name(self, name: str) -> RoleResponse:
        """按名称获取角色(不区分大小写)"""
        key = f"{CacheKeys.ROLE}name:{name.strip().lower()}"
        cached = await self.cache.get(key)
        if cached is not None:
            return RoleResponse.model_validate(cached)

        role = await self._get_by_name(name)
        if role is None:
            raise NotFoundError("角色不存在", {"name": name})
        response = RoleResponse.model_validate(role)
        await self.cache.set(key, response.to_cache(), CacheTTL.ROLE)
        return response

    @translate_db_errors
    async def update(self, role_id: str, data: RoleUpdate) -> RoleResponse:
        """
        更新角色

        Raises:
            NotFoundError: 角色不存在
            ConflictError: 重命名受保护的系统角色
            AlreadyExistsError: 新名称已被其他角色使用
        """
        role = await self._get_role_or_404(role_id)
        fields = data.model_dump(exclude_unset=True)

        new_name = fields.get("name")
        if new_name is not None and new_name.strip() != role.name:
            new_name = new_name.strip()
            if is_protected_role(role.name):
                logger.warning(f"更新角色失败: 系统角色不允许改名 - {role.name}")
                raise ConflictError("系统角色不允许改名", {"name": role.name})
            other = await self._get_by_name(new_name)
            if other is not None and other.id != role.id:
                raise AlreadyExistsError("角色名称已存在", {"name": new_name})
            role.name = new_name

        if "description" in fields:
            role.description = fields["description"]
        if fields.get("permissions") is not None:
            role.permissions = list(fields["permissions"])

        role.updated_at = utcnow()
        await self.db.commit()

        await clear_role_cache(self.cache)
        logger.info(f"角色更新成功: role_id={role.id}, fields={sorted(fields)}")
        return RoleResponse.model_validate(role)

    @translate_db_errors
    async def remove(self, role_id: str):
        """
        删除角色

        Raises:
            NotFoundError: 角色不存在
            ConflictError: 受保护的系统角色, 或仍有用户拥有该角色
        """
        role = await self._get_role_or_404(role_id)
        if is_protected_role(role.name):
            logger.warning(f"删除角色失败: 系统角色不允许删除 - {role.name}")
            raise ConflictError("系统角色不允许删除", {"name": role.name})

        members = (
            await self.db.execute(
                select(func.count())
                .select_from(user_roles)
                .where(user_roles.c.role_id == role.id)
            )
        ).scalar_one()
        if members:
            logger.warning(f"删除角色失败: 仍有 {members} 个用户拥有该角色 - {role.name}")
            raise ConflictError(
                "角色仍被用户使用, 无法删除", {"name": role.name, "users": members}
            )

        await self.db.delete(role)
        await self.db.commit()

        await clear_role_cache(self.cache)
        logger.info(f"角色删除成功: role_id={role_id}, name={role.name}")

    @translate_db_errors
    async def add_permissions(self, role_id: str, permissions: List[str]) -> RoleResponse:
        """
        为角色追加权限(自动去重)

        Raises:
            BadRequestError: 没有提供有效的权限
        """
        role = await self._get_role_or_404(role_id)
        valid = normalize_permissions(permissions)
        if not valid:
            raise BadRequestError("没有提供有效的权限", {"permissions": permissions})
        merged = normalize_permissions(list(role.permissions or []) + valid)
        return await self._save_permissions(role, merged, "追加")

    @translate_db_errors
    async def remove_permissions(self, role_id: str, permissions: List[str]) -> RoleResponse:
        """移除角色的指定权限, 不存在的权限忽略"""
        role = await self._get_role_or_404(role_id)
        removing = set(normalize_permissions(permissions))
        remaining = [p for p in (role.permissions or []) if p not in removing]
        return await self._save_permissions(role, remaining, "移除")

    @translate_db_errors
    async def set_permissions(self, role_id: str, permissions: List[str]) -> RoleResponse:
        """整体替换角色的权限"""
        role = await self._get_role_or_404(role_id)
        return await self._save_permissions(
            role, normalize_permissions(permissions), "替换"
        )

    @translate_db_errors
    async def get_users_with_role(self, role_id: str) -> RoleMembersResponse:
        """获取角色及拥有该角色的用户"""
        key = f"{CacheKeys.ROLE}{role_id}:users"
        cached = await self.cache.get(key)
        if cached is not None:
            return RoleMembersResponse.model_validate(cached)

        role = await self._get_role_or_404(role_id)
        result = await self.db.execute(
            select(User)
            .join(user_roles, user_roles.c.user_id == User.id)
            .where(user_roles.c.role_id == role.id)
            .order_by(User.created_at)
        )
        response = RoleMembersResponse(
            **RoleResponse.model_validate(role).model_dump(),
            users=[UserSummary.model_validate(user) for user in result.scalars().all()],
        )
        await self.cache.set(key, response.to_cache(), CacheTTL.ROLE)
        return response

    @translate_db_errors
    async def get_all_permissions(self) -> List[str]:
        """汇总所有角色中出现过的权限"""
        key = f"{CacheKeys.ROLE}all:permissions"
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        result = await self.db.execute(select(Role.permissions))
        permissions = set()
        for role_permissions in result.scalars().all():
            permissions.update(role_permissions or [])
        merged = sorted(permissions)
        await self.cache.set(key, merged, CacheTTL.ROLE)
        return merged

    @translate_db_errors
    async def get_roles_by_permission(self, permission: str) -> List[RoleResponse]:
        """获取拥有指定权限的角色"""
        key = f"{CacheKeys.ROLE}permission:{permission}"
        cached = await self.cache.get(key)
        if cached is not None:
            return [RoleResponse.model_validate(item) for item in cached]

        # 权限存储为 JSON 数组, 为兼容不同数据库在应用层过滤
        result = await self.db.execute(select(Role).order_by(Role.name))
        roles = [
            RoleResponse.model_validate(role)
            for role in result.scalars().all()
            if permission in (role.permissions or [])
        ]
        await self.cache.set(key, [role.to_cache() for role in roles], CacheTTL.ROLE)
        return roles

    async def has_permission(self, role_id: str, permission: str) -> bool:
        """判断角色是否拥有指定权限"""
        role = await self.find_by_id(role_id)
        return permission in role.permissions
