"""
用户相关的 Pydantic 模型
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field

from tms_middleware.schemas.base import BaseResponseModel
from tms_middleware.schemas.role import RoleResponse, RoleSummary


class UserBase(BaseModel):
    """用户基础模型"""

    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=32)


class UserCreate(UserBase):
    """创建用户请求模型"""

    password: str = Field(..., min_length=6, description="密码")
    role_ids: Optional[List[str]] = Field(None, description="角色ID列表")


class UserUpdate(BaseModel):
    """更新用户请求模型, 只更新传入的字段"""

    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=32)
    is_active: Optional[bool] = None
    role_ids: Optional[List[str]] = Field(None, description="角色ID列表(整体替换)")


class UserStatusUpdate(BaseModel):
    """启用 / 禁用用户请求模型"""

    is_active: bool


class PasswordChange(BaseModel):
    """修改密码请求模型"""

    old_password: str = Field(..., min_length=6, description="旧密码")
    new_password: str = Field(..., min_length=6, description="新密码")


class UserSummary(BaseResponseModel):
    """用户摘要"""

    id: str
    email: str
    first_name: str
    last_name: str
    is_active: bool


class UserResponse(BaseResponseModel):
    """用户响应模型"""

    id: str
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    is_active: bool
    roles: List[RoleSummary] = []
    created_at: datetime
    updated_at: datetime


class UserProfileResponse(UserResponse):
    """当前用户资料, 附带聚合后的权限"""

    permissions: List[str] = []


class RoleMembersResponse(RoleResponse):
    """角色及其成员"""

    users: List[UserSummary] = []
