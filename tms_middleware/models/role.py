"""
角色数据库模型
"""

import uuid

from sqlalchemy import JSON, Column, Integer, String, DateTime, Text
from sqlalchemy.dialects.postgresql import JSONB

from tms_middleware.core.db import Base, utcnow


class Role(Base):
    """角色模型"""

    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(
        String(50), unique=True, index=True, nullable=False, comment="角色名称"
    )
    description = Column(Text, nullable=True, comment="角色描述")
    permissions = Column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        default=list,
        comment="权限列表, 格式: 资源:操作",
    )
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        comment="更新时间",
    )
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Role(id={self.id}, name={self.name})>"
