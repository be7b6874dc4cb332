"""
缓存管理工具

提供统一的缓存清除接口, 确保用户信息, 角色, 权限, 订单变化时能及时更新缓存.

清除策略: 按实体类型前缀整体清除, 而不是逐个 Key 删除.
- 用户变化: 清除 users:* 和 roles:* (角色成员列表缓存在 roles: 下)
- 角色变化: 清除 roles:* 和 users:* (用户缓存中嵌入了角色, 权限缓存由角色聚合而来)
- 订单变化: 清除 orders:*
"""

from loguru import logger

from tms_middleware.core.cache import CacheService
from tms_middleware.core.constants import CacheKeys


async def clear_user_cache(cache: CacheService):
    """
    清除用户相关的所有缓存

    使用场景:
    - 用户创建, 删除
    - 用户信息更新(邮箱, 密码, 姓名等)
    - 用户角色变化
    - 用户被禁用/启用
    """
    users = await cache.delete_by_prefix(CacheKeys.USER)
    roles = await cache.delete_by_prefix(CacheKeys.ROLE)
    logger.debug(f"用户缓存已清除: users={users}, roles={roles}")


async def clear_role_cache(cache: CacheService):
    """
    清除角色相关的所有缓存, 以及依赖角色的用户缓存

    使用场景:
    - 角色创建, 删除, 改名
    - 角色权限变化(用户的聚合权限需要重新计算)
    """
    roles = await cache.delete_by_prefix(CacheKeys.ROLE)
    users = await cache.delete_by_prefix(CacheKeys.USER)
    logger.debug(f"角色缓存已清除: roles={roles}, users={users}")


async def clear_order_cache(cache: CacheService):
    """清除订单相关的所有缓存"""
    orders = await cache.delete_by_prefix(CacheKeys.ORDER)
    logger.debug(f"订单缓存已清除: orders={orders}")
