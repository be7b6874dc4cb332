"""
关联表模型
用于定义用户-角色多对多关系

用户和角色之间不建立双向 relationship, 需要时通过该表显式 join 查询.
"""

from sqlalchemy import Column, String, ForeignKey, Table

from tms_middleware.core.db import Base

# 用户-角色关联表
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)
