"""
认证相关的 Pydantic 模型
"""

from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field

from tms_middleware.schemas.user import UserBase, UserResponse


class LoginRequest(BaseModel):
    """用户登录请求模型"""

    email: EmailStr = Field(..., description="邮箱")
    password: str = Field(..., min_length=6, description="密码")


class UserRegister(UserBase):
    """用户注册请求模型(不允许自行指定角色)"""

    password: str = Field(..., min_length=6, description="密码")


class TokenRefresh(BaseModel):
    """刷新 Token 请求模型"""

    refresh_token: str = Field(..., min_length=1, description="Refresh Token")


class LogoutRequest(BaseModel):
    """登出请求模型"""

    refresh_token: Optional[str] = Field(
        None, description="Refresh Token (可选, 提供时一并撤销)"
    )


class TokenPair(BaseModel):
    """Token 响应模型"""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # Access Token 过期时间(秒)


class AuthResponse(TokenPair):
    """登录 / 刷新响应模型"""

    user: UserResponse


class TokenClaims(BaseModel):
    """Token 中携带的声明"""

    sub: str
    email: str
    roles: List[str] = []
    permissions: List[str] = []
    type: str
    jti: str
    iat: int
    exp: int


class TokenValidationResponse(BaseModel):
    """Token 校验响应模型"""

    valid: bool = True
    user: TokenClaims
