"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from pydantic import BaseModel, Field, field_validator, model_serializer, ConfigDict
from shared.codes import BusinessCode
from typing import Optional, Any, List, Literal
from datetime import datetime, timezone
from core.config import settings

from domain.message.entity import DirectMessage, LiveChatMessage, MAX_TEXT_LENGTH
from domain.notification.entity import Notification
from domain.user.entity import User, PresenceRecord


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


# -------------------- 私信 --------------------
class AttachmentDTO(DTOBase):
    type: Literal["image", "file"]
    url: str = Field(..., min_length=1, max_length=1024)
    name: Optional[str] = Field(None, max_length=255)
    size: Optional[int] = Field(None, ge=0)


class DirectMessageDTO(DTOBase):
    """私信响应DTO"""
    id: int
    sender_id: int
    recipient_id: int
    text: Optional[str]
    attachment: Optional[AttachmentDTO] = None
    is_read: bool
    created_at: datetime

    @classmethod
    def from_entity(cls, message: DirectMessage) -> "DirectMessageDTO":
        att = message.attachment
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            recipient_id=message.recipient_id,
            text=message.text,
            attachment=AttachmentDTO(type=att.type, url=att.url, name=att.name, size=att.size) if att else None,
            is_read=message.is_read,
            created_at=message.created_at,
        )


class SendDirectMessageDTO(DTOBase):
    """发送私信请求"""
    recipient_id: int = Field(..., ge=1)
    text: Optional[str] = Field(None, max_length=MAX_TEXT_LENGTH)
    attachment: Optional[AttachmentDTO] = None


class ContactDTO(DTOBase):
    """会话列表项：对端、最后一条消息及未读数"""
    peer_id: int
    username: Optional[str] = None
    is_online: bool = False
    last_message: Optional[DirectMessageDTO] = None
    last_message_at: Optional[datetime] = None
    unread_count: int = 0


class UnreadCountDTO(DTOBase):
    unread_count: int


class AffectedCountDTO(DTOBase):
    count: int


# -------------------- 群聊 --------------------
class AudioClipDTO(DTOBase):
    url: str = Field(..., min_length=1, max_length=1024)
    duration: float = Field(0.0, ge=0)


class LiveChatMessageDTO(DTOBase):
    """群聊消息响应DTO"""
    id: int
    sender_id: int
    text: Optional[str]
    audio: Optional[AudioClipDTO] = None
    seen_by: List[int] = Field(default_factory=list)
    created_at: datetime

    @classmethod
    def from_entity(cls, message: LiveChatMessage) -> "LiveChatMessageDTO":
        audio = message.audio
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            text=message.text,
            audio=AudioClipDTO(url=audio.url, duration=audio.duration) if audio else None,
            seen_by=sorted(message.seen_by),
            created_at=message.created_at,
        )


class SendLiveChatMessageDTO(DTOBase):
    text: Optional[str] = Field(None, max_length=MAX_TEXT_LENGTH)
    audio: Optional[AudioClipDTO] = None


class MarkSeenDTO(DTOBase):
    message_ids: List[int] = Field(..., min_length=1, max_length=500)


# -------------------- 通知 --------------------
class NotificationDTO(DTOBase):
    id: int
    recipient_id: int
    sender_id: Optional[int] = None
    kind: str
    payload: dict[str, Any] = Field(default_factory=dict)
    is_read: bool
    created_at: datetime

    @classmethod
    def from_entity(cls, notification: Notification) -> "NotificationDTO":
        return cls(
            id=notification.id,
            recipient_id=notification.recipient_id,
            sender_id=notification.sender_id,
            kind=notification.kind,
            payload=dict(notification.payload or {}),
            is_read=notification.is_read,
            created_at=notification.created_at,
        )


class CreateNotificationDTO(DTOBase):
    """外部业务投递通知的请求体"""
    recipient_id: int = Field(..., ge=1)
    sender_id: Optional[int] = Field(None, ge=1)
    kind: str = Field(..., min_length=1, max_length=50)
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("kind")
    def _strip_kind(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("kind 不能为空")
        return v


# -------------------- 在线状态 --------------------
class PresenceDTO(DTOBase):
    user_id: int
    is_online: bool
    last_active: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(cls, user_id: int, record: PresenceRecord) -> "PresenceDTO":
        return cls(user_id=user_id, is_online=record.is_online, last_active=record.last_active)

    @classmethod
    def from_user(cls, user: User) -> "PresenceDTO":
        return cls.from_record(user.id, user.presence)


class PaginationParams(DTOBase):
    """分页参数（页码/每页大小），自动派生 skip/limit"""
    page: int = Field(1, ge=1, description="页码，从1开始")
    size: int = Field(
        default=settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="每页大小",
    )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size


class MessageDTO(DTOBase):
    """简单消息响应DTO"""
    message: str
    code: int = BusinessCode.SUCCESS
