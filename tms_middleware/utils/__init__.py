"""
工具模块

- cache: 按实体类型清除缓存
- token: Access / Refresh Token 的签发, 验证和撤销

token 依赖服务层, 这里只导出缓存工具, 使用 TokenService 时直接从 utils.token 导入.
"""

from tms_middleware.utils.cache import clear_order_cache, clear_role_cache, clear_user_cache

__all__ = [
    "clear_user_cache",
    "clear_role_cache",
    "clear_order_cache",
]
