"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .message import DirectMessageModel, LiveChatMessageModel, LiveChatSeenModel
from .notification import NotificationModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "DirectMessageModel",
    "LiveChatMessageModel",
    "LiveChatSeenModel",
    "NotificationModel",
]
