"""
认证相关的依赖注入
"""

from typing import Optional
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tms_middleware.core.container import AppContainer, Services, build_services
from tms_middleware.core.db import get_db
from tms_middleware.core.exceptions import UnauthenticatedError
from tms_middleware.schemas.auth import TokenClaims

# OAuth2 密码流(用于从 Authorization Header 获取 Token, 同时生成 OpenAPI 文档)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_container(request: Request) -> AppContainer:
    """获取启动时挂载到 app.state 上的应用容器"""
    return request.app.state.container


async def get_services(
    db: AsyncSession = Depends(get_db),
    container: AppContainer = Depends(get_container),
) -> Services:
    """获取绑定到当前请求数据库会话的服务集合"""
    return build_services(db, container.cache, container.settings)


async def get_token_from_request(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
) -> Optional[str]:
    """
    从请求中获取 Token, 支持 Header 和 Cookie 两种方式

    优先级: Header (Authorization Bearer) > Cookie (token)
    """
    if token:
        return token
    return request.cookies.get("token") or None


async def get_current_claims(
    request: Request,
    token: Optional[str] = Depends(get_token_from_request),
    services: Services = Depends(get_services),
) -> TokenClaims:
    """
    获取当前登录用户的 Token 声明

    验证通过后同时保存到 request.state.claims, 供后续处理复用.

    Raises:
        UnauthenticatedError: Token 缺失, 无效, 过期或已撤销
    """
    if not token:
        raise UnauthenticatedError("缺少认证 Token")
    claims = await services.tokens.verify_access(token)
    request.state.claims = claims
    return claims


async def require_token(token: Optional[str] = Depends(get_token_from_request)) -> str:
    """要求请求中必须带有 Token, 返回原始 Token 字符串"""
    if not token:
        raise UnauthenticatedError("缺少认证 Token")
    return token
