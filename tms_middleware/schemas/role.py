"""
角色相关的 Pydantic 模型
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from tms_middleware.schemas.base import BaseResponseModel


def normalize_permissions(permissions: List[str]) -> List[str]:
    """去掉空字符串和重复项, 保持首次出现的顺序"""
    result: List[str] = []
    for permission in permissions:
        permission = permission.strip()
        if permission and permission not in result:
            result.append(permission)
    return result


class RoleBase(BaseModel):
    """角色基础模型"""

    name: str = Field(..., min_length=2, max_length=50, description="角色名称")
    description: Optional[str] = Field(None, description="角色描述")


class RoleCreate(RoleBase):
    """创建角色请求模型"""

    permissions: List[str] = Field(default_factory=list, description="权限列表")

    @field_validator("permissions")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        return normalize_permissions(value)


class RoleUpdate(BaseModel):
    """更新角色请求模型"""

    name: Optional[str] = Field(
        None, min_length=2, max_length=50, description="角色名称"
    )
    description: Optional[str] = Field(None, description="角色描述")
    permissions: Optional[List[str]] = Field(None, description="权限列表(整体替换)")

    @field_validator("permissions")
    @classmethod
    def _dedupe(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return normalize_permissions(value) if value is not None else None


class PermissionsPayload(BaseModel):
    """添加 / 移除 / 设置角色权限请求模型"""

    permissions: List[str] = Field(..., description="权限列表")


class RoleSummary(BaseResponseModel):
    """角色摘要(嵌入用户信息中)"""

    id: str
    name: str
    description: Optional[str] = None


class RoleResponse(BaseResponseModel, RoleBase):
    """角色响应模型"""

    id: str
    permissions: List[str] = []
    created_at: datetime
    updated_at: datetime
