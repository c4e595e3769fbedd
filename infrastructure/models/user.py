"""
用户数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型；账户字段由外部系统维护，
实时中心只写 is_online / last_active。
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from datetime import datetime, timezone

from .base import Base


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(30), unique=True, index=True, nullable=False, comment="用户名")
    is_active = Column(Boolean, default=True, nullable=False, comment="是否激活")

    # 在线状态（由 PresenceService 维护，REST 读取与实时视图保持一致）
    is_online = Column(Boolean, default=False, nullable=False, comment="是否在线")
    last_active = Column(DateTime(timezone=True), nullable=True, comment="最后活跃时间")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    def __repr__(self):
        return f"<UserModel(id={self.id}, username='{self.username}', is_online={self.is_online})>"
