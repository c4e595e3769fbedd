"""
消息数据库模型 - 私信与群聊
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Text, ForeignKey, UniqueConstraint, Index
from datetime import datetime, timezone

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DirectMessageModel(Base):
    __tablename__ = "direct_messages"

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=True, comment="文本内容，附件消息可为空")

    attachment_type = Column(String(10), nullable=True, comment="image / file")
    attachment_url = Column(String(1024), nullable=True)
    attachment_name = Column(String(255), nullable=True)
    attachment_size = Column(Integer, nullable=True)

    is_read = Column(Boolean, default=False, nullable=False, comment="接收者是否已读")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        # 未读计数按接收者+状态查询
        Index("ix_direct_messages_recipient_unread", "recipient_id", "is_read"),
        Index("ix_direct_messages_pair_created", "sender_id", "recipient_id", "created_at"),
    )


class LiveChatMessageModel(Base):
    __tablename__ = "live_chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=True)
    audio_url = Column(String(1024), nullable=True)
    audio_duration = Column(Float, nullable=True, comment="秒")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)


class LiveChatSeenModel(Base):
    """seen_by 集合：每个 (message, user) 只出现一次"""
    __tablename__ = "live_chat_message_seen"

    id = Column(Integer, primary_key=True)
    message_id = Column(Integer, ForeignKey("live_chat_messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_live_chat_seen_message_user"),
    )
