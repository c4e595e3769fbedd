"""
消息领域实体 - 私信与群聊消息
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Set

from domain.common.exceptions import DomainValidationException


MAX_TEXT_LENGTH = 4000
ATTACHMENT_TYPES = ("image", "file")


@dataclass
class Attachment:
    """私信附件（只保存引用，不保存文件本身）"""
    type: str
    url: str
    name: Optional[str] = None
    size: Optional[int] = None

    def __post_init__(self):
        if self.type not in ATTACHMENT_TYPES:
            raise DomainValidationException(
                "Unsupported attachment type",
                field="attachment.type",
                details={"type": self.type, "allowed": list(ATTACHMENT_TYPES)},
            )
        if not self.url:
            raise DomainValidationException("Attachment url is required", field="attachment.url")


@dataclass
class AudioClip:
    """群聊语音消息引用"""
    url: str
    duration: float = 0.0


def _normalize_text(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    if len(text) > MAX_TEXT_LENGTH:
        raise DomainValidationException(
            "Message text too long",
            field="text",
            details={"max": MAX_TEXT_LENGTH},
        )
    return text or None


@dataclass
class DirectMessage:
    """私信实体 - 创建后只有接收者可以修改 is_read"""

    id: Optional[int]
    sender_id: int
    recipient_id: int
    text: Optional[str] = None
    attachment: Optional[Attachment] = None
    is_read: bool = False
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.text = _normalize_text(self.text)
        if self.text is None and self.attachment is None:
            raise DomainValidationException("Message text or attachment is required", field="text")
        if self.sender_id == self.recipient_id:
            raise DomainValidationException("Cannot send a message to yourself", field="recipient_id")

    def can_be_read_by(self, user_id: int) -> bool:
        return self.recipient_id == user_id

    def can_be_deleted_by(self, user_id: int) -> bool:
        return self.sender_id == user_id


@dataclass
class LiveChatMessage:
    """群聊消息实体 - seen_by 只能由客户端显式确认追加"""

    id: Optional[int]
    sender_id: int
    text: Optional[str] = None
    audio: Optional[AudioClip] = None
    seen_by: Set[int] = field(default_factory=set)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.text = _normalize_text(self.text)
        if self.text is None and self.audio is None:
            raise DomainValidationException("Message text or audio is required", field="text")

    @classmethod
    def compose(cls, sender_id: int, text: Optional[str] = None, audio: Optional[AudioClip] = None) -> "LiveChatMessage":
        # 发送者自己视为已读
        return cls(
            id=None,
            sender_id=sender_id,
            text=text,
            audio=audio,
            seen_by={sender_id},
            created_at=datetime.now(timezone.utc),
        )

    def can_be_deleted_by(self, user_id: int) -> bool:
        return self.sender_id == user_id
