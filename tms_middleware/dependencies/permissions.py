"""
权限检查相关的依赖注入
"""

from fastapi import Depends

from tms_middleware.core.authorization import authorize
from tms_middleware.dependencies.auth import get_current_claims
from tms_middleware.schemas.auth import TokenClaims


def require_operation(operation: str):
    """
    创建操作授权依赖

    使用示例:
        @router.get("/users")
        async def list_users(claims: TokenClaims = Depends(require_operation("user.findAll"))):
            ...

    Args:
        operation: 操作名称, 与 RPC pattern 相同

    Returns:
        依赖函数, 授权通过后返回当前用户的 Token 声明
    """

    async def operation_checker(
        claims: TokenClaims = Depends(get_current_claims),
    ) -> TokenClaims:
        authorize(claims, operation)
        return claims

    return operation_checker
