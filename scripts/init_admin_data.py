"""
初始化角色和管理员账号

创建 admin / manager / dispatcher / driver / customer 五个角色及其默认权限,
已存在的角色只更新权限; 管理员账号不存在时创建并分配 admin 角色.

使用方法:
    python scripts/init_admin_data.py [email] [password]

示例:
    python scripts/init_admin_data.py admin@example.com Admin@123
"""

import asyncio
import sys
from typing import Any, Dict

from loguru import logger

from tms_middleware.core.cache import CacheService
from tms_middleware.core.config import Settings, get_settings
from tms_middleware.core.container import build_services
from tms_middleware.core.db import create_engine, create_session_factory, init_models
from tms_middleware.core.exceptions import NotFoundError
from tms_middleware.core.redis import close_redis_client, create_redis_client
from tms_middleware.schemas.role import RoleCreate
from tms_middleware.schemas.user import UserCreate

DEFAULT_ADMIN_EMAIL = "admin@example.com"
DEFAULT_ADMIN_PASSWORD = "Admin@123"

ROLE_DEFINITIONS: Dict[str, Dict] = {
    "admin": {
        "description": "系统管理员, 拥有全部权限",
        "permissions": [
            # 用户管理
            "user:create", "user:read", "user:update", "user:delete", "user:list",
            # 角色管理
            "role:create", "role:read", "role:update", "role:delete", "role:list",
            # 订单管理
            "order:create", "order:read", "order:update", "order:delete", "order:list",
            # 系统管理
            "system:access", "system:config", "system:logs",
            "all:create", "all:read", "all:update", "all:delete",
        ],
    },
    "manager": {
        "description": "经理, 可查看用户和角色, 管理订单",
        "permissions": [
            "user:read", "user:list",
            "role:read", "role:list",
            "order:create", "order:read", "order:update", "order:list",
            "system:access",
        ],
    },
    "dispatcher": {
        "description": "调度员, 负责订单分配",
        "permissions": ["order:create", "order:read", "order:update", "order:list"],
    },
    "driver": {
        "description": "司机, 查看和更新运输中的订单",
        "permissions": ["order:read", "order:update"],
    },
    "customer": {
        "description": "客户, 下单和查看订单",
        "permissions": ["order:create", "order:read"],
    },
}


async def seed_admin_data(
    session_factory,
    cache: CacheService,
    settings: Settings,
    email: str = DEFAULT_ADMIN_EMAIL,
    password: str = DEFAULT_ADMIN_PASSWORD,
) -> Dict[str, Any]:
    """
    初始化角色和管理员账号(可重复执行)

    Returns:
        dict: created_roles / updated_roles / admin_user_id
    """
    summary: Dict[str, Any] = {"created_roles": [], "updated_roles": []}
    async with session_factory() as db:
        services = build_services(db, cache, settings)

        for name, definition in ROLE_DEFINITIONS.items():
            try:
                role = await services.roles.find_by_name(name)
            except NotFoundError:
                await services.roles.create(RoleCreate(name=name, **definition))
                summary["created_roles"].append(name)
                logger.info(f"角色已创建: {name}")
                continue
            await services.roles.set_permissions(role.id, definition["permissions"])
            summary["updated_roles"].append(name)
            logger.info(f"角色已存在, 权限已更新: {name}")

        try:
            admin = await services.users.find_by_email(email)
            logger.info(f"管理员账号已存在: {email}")
        except NotFoundError:
            admin_role = await services.roles.find_by_name("admin")
            admin = await services.users.create(
                UserCreate(
                    email=email,
                    password=password,
                    first_name="System",
                    last_name="Admin",
                    role_ids=[admin_role.id],
                )
            )
            logger.info(f"管理员账号已创建: {email}")
        summary["admin_user_id"] = admin.id
    return summary


async def main(email: str, password: str):
    settings = get_settings()
    engine = create_engine(settings)
    redis = create_redis_client(settings)
    try:
        await init_models(engine)
        cache = CacheService(redis, settings.REDIS_TTL, settings.REDIS_RETRY_DELAY)
        summary = await seed_admin_data(
            create_session_factory(engine), cache, settings, email, password
        )
    finally:
        await close_redis_client(redis)
        await engine.dispose()

    print("=" * 50)
    print("初始化完成")
    print(f"新建角色: {', '.join(summary['created_roles']) or '无'}")
    print(f"更新角色: {', '.join(summary['updated_roles']) or '无'}")
    print(f"管理员账号: {email}")
    print("=" * 50)


if __name__ == "__main__":
    if len(sys.argv) not in (1, 3):
        print(__doc__)
        sys.exit(1)
    if len(sys.argv) == 3:
        asyncio.run(main(sys.argv[1], sys.argv[2]))
    else:
        asyncio.run(main(DEFAULT_ADMIN_EMAIL, DEFAULT_ADMIN_PASSWORD))
