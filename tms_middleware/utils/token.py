"""
Token 管理工具

提供 Access / Refresh Token 的签发, 验证, 刷新, 撤销等功能.

- 白名单: auth:token:<sha256> 缓存 Access Token 的声明, 命中时跳过验签
- 黑名单: auth:revoked:<sha256> 记录已撤销的 Token, 有效期为 Token 剩余寿命
  每次验证都先查黑名单, 撤销后的 Token 即使签名仍然有效也会被拒绝

黑名单存放在缓存中, 缓存不可用期间撤销只能尽力而为, Token 会在自然过期后失效.
"""

import time
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from tms_middleware.core.cache import CacheService
from tms_middleware.core.config import Settings
from tms_middleware.core.constants import CacheKeys, CacheTTL
from tms_middleware.core.exceptions import NotFoundError, UnauthenticatedError
from tms_middleware.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_token,
    decode_token,
    hash_token,
)
from tms_middleware.schemas.auth import AuthResponse, TokenClaims, TokenPair
from tms_middleware.schemas.user import UserResponse
from tms_middleware.services.user_service import UserService


class TokenService:
    """Token 服务类"""

    def __init__(self, settings: Settings, cache: CacheService, user_service: UserService):
        self.settings = settings
        self.cache = cache
        self.user_service = user_service

    @staticmethod
    def _get_token_key(token: str) -> str:
        """获取白名单缓存 Key"""
        return f"{CacheKeys.AUTH_TOKEN}{hash_token(token)}"

    @staticmethod
    def _get_revoked_key(token: str) -> str:
        """获取黑名单缓存 Key"""
        return f"{CacheKeys.AUTH_REVOKED}{hash_token(token)}"

    def _decode(self, token: str, token_type: Optional[str]) -> Optional[dict]:
        return decode_token(
            token, self.settings.SECRET_KEY, self.settings.ALGORITHM, token_type
        )

    async def is_revoked(self, token: str) -> bool:
        """检查 Token 是否已被撤销"""
        return await self.cache.get(self._get_revoked_key(token)) is not None

    async def _deny(self, token: str, exp: int) -> Optional[bool]:
        """
        把 Token 加入黑名单(SET NX), 黑名单只需保留到 Token 自然过期

        Returns:
            True 表示本次加入, False 表示已在黑名单中, None 表示已过期或缓存不可用
        """
        ttl = int(exp - time.time())
        if ttl <= 0:
            return None
        return await self.cache.set_if_absent(self._get_revoked_key(token), 1, ttl)

    async def _remember(self, token: str, claims: TokenClaims):
        ttl = min(int(claims.exp - time.time()), CacheTTL.AUTH_TOKEN)
        if ttl > 0:
            await self.cache.set(self._get_token_key(token), claims.model_dump(), ttl)

    async def issue_token_pair(self, user: UserResponse) -> TokenPair:
        """
        为用户签发 Access Token 和 Refresh Token

        Access Token 中携带用户的角色和签发时刻的聚合权限, 并写入白名单缓存.
        """
        permissions = await self.user_service.get_user_permissions(user.id)
        data = {
            "sub": user.id,
            "email": user.email,
            "roles": [role.name for role in user.roles],
            "permissions": permissions,
        }
        access_token = create_token(
            data,
            self.settings.SECRET_KEY,
            self.settings.ALGORITHM,
            self.settings.access_token_ttl,
            ACCESS_TOKEN_TYPE,
        )
        refresh_token = create_token(
            {"sub": user.id, "email": user.email},
            self.settings.SECRET_KEY,
            self.settings.ALGORITHM,
            self.settings.refresh_token_ttl,
            REFRESH_TOKEN_TYPE,
        )

        claims = TokenClaims.model_validate(self._decode(access_token, ACCESS_TOKEN_TYPE))
        await self._remember(access_token, claims)
        logger.debug(f"Token 已签发: user_id={user.id}, jti={claims.jti}")

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.settings.access_token_ttl,
        )

    async def verify_access(self, token: str) -> TokenClaims:
        """
        验证 Access Token

        顺序: 黑名单 -> 白名单缓存 -> 验签并回写缓存.

        Raises:
            UnauthenticatedError: Token 缺失, 无效, 过期, 类型错误或已撤销
        """
        if not token:
            raise UnauthenticatedError("缺少认证 Token")

        if await self.is_revoked(token):
            logger.debug("Token 已被撤销")
            raise UnauthenticatedError("Token 已被撤销")

        cached = await self.cache.get(self._get_token_key(token))
        if cached is not None:
            try:
                claims = TokenClaims.model_validate(cached)
            except ValidationError:
                claims = None
            if (
                claims is not None
                and claims.type == ACCESS_TOKEN_TYPE
                and claims.exp > time.time()
            ):
                return claims

        payload = self._decode(token, ACCESS_TOKEN_TYPE)
        if payload is None:
            raise UnauthenticatedError("Token 无效或已过期")
        try:
            claims = TokenClaims.model_validate(payload)
        except ValidationError as e:
            logger.debug(f"Token 声明不完整: {e}")
            raise UnauthenticatedError("Token 无效或已过期") from e

        await self._remember(token, claims)
        return claims

    async def refresh(self, refresh_token: str) -> AuthResponse:
        """
        使用 Refresh Token 换取新的 Token 对

        旧的 Refresh Token 通过 SET NX 加入黑名单(轮换), 同一个 Refresh Token
        只能成功刷新一次. 权限按用户当前角色重新计算.

        Raises:
            UnauthenticatedError: Refresh Token 无效, 已撤销, 或用户不存在 / 已禁用
        """
        payload = self._decode(refresh_token, REFRESH_TOKEN_TYPE)
        if payload is None or not payload.get("sub"):
            raise UnauthenticatedError("Refresh Token 无效或已过期")
        if await self.is_revoked(refresh_token):
            logger.warning(f"已撤销的 Refresh Token 被再次使用: user_id={payload['sub']}")
            raise UnauthenticatedError("Refresh Token 已被撤销")

        try:
            user = await self.user_service.find_by_id(payload["sub"])
        except NotFoundError as e:
            raise UnauthenticatedError("用户不存在") from e
        if not user.is_active:
            raise UnauthenticatedError("用户已被禁用")

        # 原子地占用旧 Refresh Token, 并发刷新时只有一个请求能成功
        if await self._deny(refresh_token, payload["exp"]) is False:
            logger.warning(f"Refresh Token 已被并发使用: user_id={user.id}")
            raise UnauthenticatedError("Refresh Token 已被撤销")
        pair = await self.issue_token_pair(user)
        logger.info(f"Token 刷新成功: user_id={user.id}")
        return AuthResponse(**pair.model_dump(), user=user)

    async def revoke(self, access_token: str, refresh_token: Optional[str] = None):
        """
        撤销 Token

        删除白名单记录, 并把 Token 加入黑名单直到其自然过期.
        无效或已过期的 Token 无需加入黑名单.
        """
        await self.cache.delete(self._get_token_key(access_token))
        payload = self._decode(access_token, None)
        if payload is not None:
            await self._deny(access_token, payload["exp"])

        if refresh_token:
            refresh_payload = self._decode(refresh_token, REFRESH_TOKEN_TYPE)
            if refresh_payload is not None:
                await self._deny(refresh_token, refresh_payload["exp"])

        logger.debug(f"Token 已撤销: user_id={payload.get('sub') if payload else None}")
