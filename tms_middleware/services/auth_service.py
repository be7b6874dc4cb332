"""
认证服务

登录, 注册, 刷新, 登出和 Token 校验的编排, Token 细节由 TokenService 处理.
"""

from typing import Optional

from loguru import logger

from tms_middleware.core.constants import DEFAULT_ROLE_NAME
from tms_middleware.core.exceptions import InvalidCredentialsError, NotFoundError
from tms_middleware.schemas.auth import (
    AuthResponse,
    TokenValidationResponse,
    UserRegister,
)
from tms_middleware.schemas.user import UserCreate, UserProfileResponse, UserResponse
from tms_middleware.services.role_service import RoleService
from tms_middleware.services.user_service import UserService
from tms_middleware.utils.token import TokenService


class AuthService:
    """认证服务类"""

    def __init__(
        self,
        user_service: UserService,
        role_service: RoleService,
        token_service: TokenService,
    ):
        self.user_service = user_service
        self.role_service = role_service
        self.token_service = token_service

    async def validate_user(self, email: str, password: str) -> Optional[UserResponse]:
        """校验邮箱和密码, 失败返回 None"""
        return await self.user_service.validate_user(email, password)

    async def login(self, email: str, password: str) -> AuthResponse:
        """
        用户登录

        用户不存在, 已禁用和密码错误返回同一个错误, 不暴露具体原因.

        Raises:
            InvalidCredentialsError: 凭据无效
        """
        user = await self.user_service.validate_user(email, password)
        if user is None:
            logger.warning(f"登录失败: 邮箱或密码错误 - {email}")
            raise InvalidCredentialsError("邮箱或密码错误")

        pair = await self.token_service.issue_token_pair(user)
        logger.info(f"用户登录成功: user_id={user.id}, email={user.email}")
        return AuthResponse(**pair.model_dump(), user=user)

    async def register(self, data: UserRegister) -> AuthResponse:
        """
        用户自助注册并直接登录

        默认角色存在时自动分配, 不允许注册时自行指定角色.

        Raises:
            AlreadyExistsError: 邮箱已被注册
        """
        role_ids = []
        try:
            role_ids.append((await self.role_service.find_by_name(DEFAULT_ROLE_NAME)).id)
        except NotFoundError:
            logger.warning(f"默认角色不存在, 注册用户将没有任何角色: {DEFAULT_ROLE_NAME}")

        user = await self.user_service.create(
            UserCreate(**data.model_dump(), role_ids=role_ids)
        )
        pair = await self.token_service.issue_token_pair(user)
        logger.info(f"用户注册成功: user_id={user.id}, email={user.email}")
        return AuthResponse(**pair.model_dump(), user=user)

    async def refresh(self, refresh_token: str) -> AuthResponse:
        """刷新 Token"""
        return await self.token_service.refresh(refresh_token)

    async def get_profile(self, user_id: str) -> UserProfileResponse:
        """获取用户资料及聚合权限"""
        user = await self.user_service.find_by_id(user_id)
        permissions = await self.user_service.get_user_permissions(user_id)
        return UserProfileResponse(**user.model_dump(), permissions=permissions)

    async def logout(self, access_token: str, refresh_token: Optional[str] = None):
        """登出, 撤销当前 Access Token(以及可选的 Refresh Token)"""
        await self.token_service.revoke(access_token, refresh_token)
        logger.info("用户已登出")

    async def validate_token(self, token: str) -> TokenValidationResponse:
        """
        校验 Access Token

        Raises:
            UnauthenticatedError: Token 无效, 过期或已撤销
        """
        claims = await self.token_service.verify_access(token)
        return TokenValidationResponse(valid=True, user=claims)
