"""
全局常量

- 缓存 Key 前缀与过期时间
- 系统角色名称
"""


class CacheKeys:
    """缓存 Key 前缀, 同一类实体共享一个前缀, 便于按前缀批量失效"""

    USER = "users:"
    USER_BY_EMAIL = "users:email:"
    ROLE = "roles:"
    ORDER = "orders:"
    AUTH_TOKEN = "auth:token:"
    AUTH_REVOKED = "auth:revoked:"
    HEALTH_CHECK = "health:check:"


class CacheTTL:
    """各命名空间的缓存过期时间, 单位: 秒"""

    USER = 3600  # 1小时
    ROLE = 3600  # 1小时
    ORDER = 3600  # 1小时
    AUTH_TOKEN = 86400  # 24小时, 实际写入时不超过访问令牌有效期
    HEALTH_CHECK = 5


# 按前缀删除时每批删除的 Key 数量
CACHE_DELETE_BATCH_SIZE = 100

# 管理员类角色: 系统中必须至少保留一个拥有此类角色的活跃用户
ADMIN_ROLE_NAMES = frozenset({"admin", "super-admin"})

# 受保护的系统角色: 不可删除, 不可改名
PROTECTED_ROLE_NAMES = frozenset({"admin", "super-admin", "system"})

# 自助注册用户的默认角色
DEFAULT_ROLE_NAME = "customer"
