"""
认证路由
- 用户注册, 登录
- 刷新 Token, 登出
- 获取当前用户资料, 校验 Token
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status

from tms_middleware.core.config import Settings
from tms_middleware.core.container import AppContainer, Services
from tms_middleware.core.exceptions import UnauthenticatedError
from tms_middleware.dependencies.auth import get_container, get_services, require_token
from tms_middleware.dependencies.permissions import require_operation
from tms_middleware.schemas.auth import (
    AuthResponse,
    LoginRequest,
    LogoutRequest,
    TokenClaims,
    TokenRefresh,
    TokenValidationResponse,
    UserRegister,
)
from tms_middleware.schemas.base import MessageResponse
from tms_middleware.schemas.user import UserProfileResponse

router = APIRouter(prefix="/auth", tags=["认证"])


def _set_token_cookies(response: Response, auth: AuthResponse, settings: Settings):
    """
    设置 Cookie(用于 Web 应用自动携带)

    HttpOnly 防止 JavaScript 访问, 生产环境只在 HTTPS 下传输
    """
    response.set_cookie(
        key="token",
        value=auth.access_token,
        max_age=settings.access_token_ttl,
        httponly=True,
        secure=not settings.DEBUG,
        samesite="lax",
    )
    response.set_cookie(
        key="refresh_token",
        value=auth.refresh_token,
        max_age=settings.refresh_token_ttl,
        httponly=True,
        secure=not settings.DEBUG,
        samesite="lax",
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    data: LoginRequest,
    response: Response,
    services: Services = Depends(get_services),
    container: AppContainer = Depends(get_container),
):
    """
    用户登录

    返回 Access Token 和 Refresh Token, 同时设置 Cookie
    """
    auth = await services.auth.login(data.email, data.password)
    _set_token_cookies(response, auth, container.settings)
    return auth


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: UserRegister,
    response: Response,
    services: Services = Depends(get_services),
    container: AppContainer = Depends(get_container),
):
    """
    用户注册(自动分配默认角色并登录)
    """
    auth = await services.auth.register(data)
    _set_token_cookies(response, auth, container.settings)
    return auth


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    request: Request,
    response: Response,
    data: Optional[TokenRefresh] = None,
    services: Services = Depends(get_services),
    container: AppContainer = Depends(get_container),
):
    """
    刷新 Token

    Refresh Token 优先从请求体获取, 其次从 Cookie 获取. 旧的 Refresh Token 会失效.
    """
    refresh_token = data.refresh_token if data else request.cookies.get("refresh_token")
    if not refresh_token:
        raise UnauthenticatedError("缺少 Refresh Token")
    auth = await services.auth.refresh(refresh_token)
    _set_token_cookies(response, auth, container.settings)
    return auth


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    data: Optional[LogoutRequest] = None,
    token: str = Depends(require_token),
    _: TokenClaims = Depends(require_operation("auth.logout")),
    services: Services = Depends(get_services),
):
    """
    用户登出

    撤销当前 Access Token 和 Refresh Token(如果提供), 清除 Cookie
    """
    refresh_token = (data.refresh_token if data else None) or request.cookies.get(
        "refresh_token"
    )
    await services.auth.logout(token, refresh_token)
    response.delete_cookie(key="token", httponly=True, samesite="lax")
    response.delete_cookie(key="refresh_token", httponly=True, samesite="lax")
    return MessageResponse(message="登出成功")


@router.get("/profile", response_model=UserProfileResponse)
async def profile(
    claims: TokenClaims = Depends(require_operation("auth.getProfile")),
    services: Services = Depends(get_services),
):
    """获取当前用户资料及权限"""
    return await services.auth.get_profile(claims.sub)


@router.get("/validate", response_model=TokenValidationResponse)
async def validate(claims: TokenClaims = Depends(require_operation("auth.validate"))):
    """校验当前 Token 是否有效"""
    return TokenValidationResponse(valid=True, user=claims)
