"""
用户服务

用户的增删改查, 角色分配, 权限聚合和密码校验.
读操作先查缓存, 未命中再查数据库并回写缓存; 写操作先提交数据库, 再按前缀清除缓存.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from tms_middleware.core.cache import CacheService
from tms_middleware.core.config import Settings
from tms_middleware.core.constants import ADMIN_ROLE_NAMES, CacheKeys, CacheTTL
from tms_middleware.core.db import translate_db_errors, utcnow
from tms_middleware.core.exceptions import (
    AlreadyExistsError,
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
)
from tms_middleware.core.security import get_password_hash_async, verify_password_async
from tms_middleware.models import Role, User, user_roles
from tms_middleware.schemas.role import RoleSummary
from tms_middleware.schemas.user import UserCreate, UserResponse, UserUpdate
from tms_middleware.utils.cache import clear_user_cache


def normalize_email(email: str) -> str:
    """邮箱统一转为小写后存储和查询"""
    return str(email).strip().lower()


def is_admin_role(name: str) -> bool:
    return name.lower() in ADMIN_ROLE_NAMES


class UserService:
    """用户服务类"""

    def __init__(self, db: AsyncSession, cache: CacheService, settings: Settings):
        self.db = db
        self.cache = cache
        self.settings = settings

    # ---------- 内部工具 ----------

    async def _roles_by_user(self, user_ids: Iterable[str]) -> Dict[str, List[Role]]:
        """一次查询出多个用户的角色, 按用户ID分组"""
        user_ids = list(user_ids)
        grouped: Dict[str, List[Role]] = defaultdict(list)
        if not user_ids:
            return grouped
        result = await self.db.execute(
            select(user_roles.c.user_id, Role)
            .join(Role, Role.id == user_roles.c.role_id)
            .where(user_roles.c.user_id.in_(user_ids))
            .order_by(Role.name)
        )
        for user_id, role in result.all():
            grouped[user_id].append(role)
        return grouped

    async def _get_user_roles(self, user_id: str) -> List[Role]:
        """查询用户当前拥有的角色"""
        grouped = await self._roles_by_user([user_id])
        return grouped.get(user_id, [])

    @staticmethod
    def _build_response(user: User, roles: List[Role]) -> UserResponse:
        return UserResponse(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            phone=user.phone,
            is_active=user.is_active,
            roles=[RoleSummary.model_validate(role) for role in roles],
            created_at=user.created_at,
            updated_at=user.updated_at,
        )

    async def _to_response(self, user: User) -> UserResponse:
        roles = await self._get_user_roles(user.id)
        return self._build_response(user, roles)

    async def _to_responses(self, users: List[User]) -> List[UserResponse]:
        grouped = await self._roles_by_user(user.id for user in users)
        return [self._build_response(user, grouped.get(user.id, [])) for user in users]

    async def _get_user_or_404(self, user_id: str) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("用户不存在", {"user_id": user_id})
        return user

    async def _get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def _get_roles(self, role_ids: List[str]) -> List[Role]:
        """按ID查询角色, 任何一个不存在都视为请求错误"""
        unique_ids = list(dict.fromkeys(role_ids))
        if not unique_ids:
            return []
        result = await self.db.execute(select(Role).where(Role.id.in_(unique_ids)))
        roles = list(result.scalars().all())
        missing = sorted(set(unique_ids) - {role.id for role in roles})
        if missing:
            raise NotFoundError("角色不存在", {"role_ids": missing})
        return roles

    async def _replace_roles(self, user_id: str, roles: List[Role]):
        # 先删后插, 整体替换用户的角色
        await self.db.execute(delete(user_roles).where(user_roles.c.user_id == user_id))
        if roles:
            await self.db.execute(
                insert(user_roles),
                [{"user_id": user_id, "role_id": role.id} for role in roles],
            )

    async def _count_active_admins(self, exclude_user_id: Optional[str] = None) -> int:
        stmt = (
            select(func.count(func.distinct(User.id)))
            .select_from(User)
            .join(user_roles, user_roles.c.user_id == User.id)
            .join(Role, Role.id == user_roles.c.role_id)
            .where(User.is_active.is_(True))
            .where(func.lower(Role.name).in_(sorted(ADMIN_ROLE_NAMES)))
        )
        if exclude_user_id is not None:
            stmt = stmt.where(User.id != exclude_user_id)
        return (await self.db.execute(stmt)).scalar_one()

    async def _ensure_not_last_admin(self, user: User, roles: List[Role], action: str):
        """
        用户当前是活跃管理员时, 确认系统中还有其他活跃管理员

        Raises:
            ConflictError: 该用户是最后一个活跃管理员
        """
        if not user.is_active or not any(is_admin_role(role.name) for role in roles):
            return
        if await self._count_active_admins(exclude_user_id=user.id) == 0:
            logger.warning(f"{action}失败: 不能移除最后一个管理员 - user_id={user.id}")
            raise ConflictError(
                "系统中必须至少保留一个活跃的管理员", {"user_id": user.id}
            )

    # ---------- 对外接口 ----------

    @translate_db_errors
    async def create(self, data: UserCreate) -> UserResponse:
        """
        创建用户

        Raises:
            AlreadyExistsError: 邮箱已被注册
            NotFoundError: 指定的角色不存在
        """
        email = normalize_email(data.email)
        if await self._get_by_email(email) is not None:
            logger.warning(f"创建用户失败: 邮箱已存在 - {email}")
            raise AlreadyExistsError("邮箱已被注册", {"email": email})

        roles = await self._get_roles(data.role_ids or [])
        hashed_password = await get_password_hash_async(
            data.password, self.settings.BCRYPT_ROUNDS
        )
        user = User(
            email=email,
            hashed_password=hashed_password,
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            is_active=True,
        )
        self.db.add(user)
        await self.db.flush()
        await self._replace_roles(user.id, roles)
        await self.db.commit()

        await clear_user_cache(self.cache)
        logger.info(
            f"用户创建成功: user_id={user.id}, email={email}, "
            f"roles={[role.name for role in roles]}"
        )
        return self._build_response(user, sorted(roles, key=lambda r: r.name))

    @translate_db_errors
    async def find_all(self) -> List[UserResponse]:
        """获取全部用户"""
        key = f"{CacheKeys.USER}all"
        cached = await self.cache.get(key)
        if cached is not None:
            return [UserResponse.model_validate(item) for item in cached]

        result = await self.db.execute(select(User).order_by(User.created_at))
        users = await self._to_responses(list(result.scalars().all()))
        await self.cache.set(key, [user.to_cache() for user in users], CacheTTL.USER)
        return users

    @translate_db_errors
    async def find_by_id(self, user_id: str) -> UserResponse:
        """按ID获取用户"""
        key = f"{CacheKeys.USER}{user_id}"
        cached = await self.cache.get(key)
        if cached is not None:
            return UserResponse.model_validate(cached)

        user = await self._to_response(await self._get_user_or_404(user_id))
        await self.cache.set(key, user.to_cache(), CacheTTL.USER)
        return user

    @translate_db_errors
    async def find_by_email(self, email: str) -> UserResponse:
        """按邮箱获取用户"""
        email = normalize_email(email)
        key = f"{CacheKeys.USER_BY_EMAIL}{email}"
        cached = await self.cache.get(key)
        if cached is not None:
            return UserResponse.model_validate(cached)

        user = await self._get_by_email(email)
        if user is None:
            raise NotFoundError("用户不存在", {"email": email})
        response = await self._to_response(user)
        await self.cache.set(key, response.to_cache(), CacheTTL.USER)
        return response

    @translate_db_errors
    async def update(self, user_id: str, data: UserUpdate) -> UserResponse:
        """
        更新用户, 只修改传入的字段

        role_ids 传入时整体替换用户的角色.

        Raises:
            NotFoundError: 用户或角色不存在
            AlreadyExistsError: 新邮箱已被其他用户使用
            ConflictError: 操作会导致系统中没有活跃管理员
        """
        user = await self._get_user_or_404(user_id)
        fields = data.model_dump(exclude_unset=True)

        if fields.get("email") is not None:
            email = normalize_email(fields["email"])
            if email != user.email:
                other = await self._get_by_email(email)
                if other is not None:
                    raise AlreadyExistsError("邮箱已被注册", {"email": email})
                user.email = email

        current_roles = await self._get_user_roles(user.id)
        new_roles = None
        if fields.get("role_ids") is not None:
            new_roles = await self._get_roles(fields["role_ids"])

        # 禁用用户或移除其管理员角色前, 确认不是最后一个管理员
        deactivating = fields.get("is_active") is False
        losing_admin = new_roles is not None and not any(
            is_admin_role(role.name) for role in new_roles
        )
        if deactivating or losing_admin:
            await self._ensure_not_last_admin(user, current_roles, "更新用户")

        if fields.get("password"):
            user.hashed_password = await get_password_hash_async(
                fields["password"], self.settings.BCRYPT_ROUNDS
            )
        for field in ("first_name", "last_name", "phone", "is_active"):
            if field in fields and (fields[field] is not None or field == "phone"):
                setattr(user, field, fields[field])

        # 即使只修改了角色, 也要更新用户行, 让版本号递增
        user.updated_at = utcnow()
        if new_roles is not None:
            await self._replace_roles(user.id, new_roles)
        await self.db.commit()

        await clear_user_cache(self.cache)
        logger.info(f"用户更新成功: user_id={user.id}, fields={sorted(fields)}")
        roles = new_roles if new_roles is not None else current_roles
        return self._build_response(user, sorted(roles, key=lambda r: r.name))

    @translate_db_errors
    async def remove(self, user_id: str):
        """
        删除用户

        Raises:
            NotFoundError: 用户不存在
            ConflictError: 该用户是最后一个活跃管理员
        """
        user = await self._get_user_or_404(user_id)
        roles = await self._get_user_roles(user.id)
        await self._ensure_not_last_admin(user, roles, "删除用户")

        await self.db.execute(delete(user_roles).where(user_roles.c.user_id == user.id))
        await self.db.delete(user)
        await self.db.commit()

        await clear_user_cache(self.cache)
        logger.info(f"用户删除成功: user_id={user_id}, email={user.email}")

    @translate_db_errors
    async def get_user_permissions(self, user_id: str) -> List[str]:
        """
        获取用户的全部权限(所有角色权限的并集, 去重后排序)

        缓存未命中时总是根据当前角色重新计算.
        """
        key = f"{CacheKeys.USER}{user_id}:permissions"
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        await self._get_user_or_404(user_id)
        permissions = set()
        for role in await self._get_user_roles(user_id):
            permissions.update(role.permissions or [])
        result = sorted(permissions)
        await self.cache.set(key, result, CacheTTL.USER)
        return result

    @translate_db_errors
    async def validate_user(self, email: str, password: str) -> Optional[UserResponse]:
        """
        校验邮箱和密码

        直接查询数据库(不走缓存). 用户不存在, 已禁用或密码错误都返回 None.
        """
        user = await self._get_by_email(email)
        if user is None or not user.is_active:
            return None
        if not await verify_password_async(
            password, user.hashed_password, self.settings.BCRYPT_ROUNDS
        ):
            return None
        return await self._to_response(user)

    @translate_db_errors
    async def change_password(self, user_id: str, old_password: str, new_password: str):
        """
        修改密码

        Raises:
            NotFoundError: 用户不存在
            InvalidCredentialsError: 旧密码错误
        """
        user = await self._get_user_or_404(user_id)
        if not await verify_password_async(
            old_password, user.hashed_password, self.settings.BCRYPT_ROUNDS
        ):
            logger.warning(f"修改密码失败: 旧密码错误 - user_id={user_id}")
            raise InvalidCredentialsError("旧密码错误")

        user.hashed_password = await get_password_hash_async(
            new_password, self.settings.BCRYPT_ROUNDS
        )
        user.updated_at = utcnow()
        await self.db.commit()

        await clear_user_cache(self.cache)
        logger.info(f"用户修改密码成功: user_id={user_id}")

    @translate_db_errors
    async def set_active(self, user_id: str, is_active: bool) -> UserResponse:
        """
        启用 / 禁用用户

        Raises:
            NotFoundError: 用户不存在
            ConflictError: 禁用最后一个活跃管理员
        """
        user = await self._get_user_or_404(user_id)
        roles = await self._get_user_roles(user.id)
        if user.is_active == is_active:
            return self._build_response(user, roles)
        if not is_active:
            await self._ensure_not_last_admin(user, roles, "禁用用户")

        user.is_active = is_active
        user.updated_at = utcnow()
        await self.db.commit()

        await clear_user_cache(self.cache)
        logger.info(f"用户状态已更新: user_id={user_id}, is_active={is_active}")
        return self._build_response(user, roles)

    @translate_db_errors
    async def get_users_by_role(self, role_name: str) -> List[UserResponse]:
        """
        获取拥有指定角色的全部用户(角色名不区分大小写)

        Raises:
            NotFoundError: 角色不存在
        """
        key = f"{CacheKeys.USER}role:{role_name.lower()}"
        cached = await self.cache.get(key)
        if cached is not None:
            return [UserResponse.model_validate(item) for item in cached]

        result = await self.db.execute(
            select(Role).where(func.lower(Role.name) == role_name.lower())
        )
        role = result.scalar_one_or_none()
        if role is None:
            raise NotFoundError("角色不存在", {"name": role_name})

        result = await self.db.execute(
            select(User)
            .join(user_roles, user_roles.c.user_id == User.id)
            .where(user_roles.c.role_id == role.id)
            .order_by(User.created_at)
        )
        users = await self._to_responses(list(result.scalars().all()))
        await self.cache.set(key, [user.to_cache() for user in users], CacheTTL.USER)
        return users
