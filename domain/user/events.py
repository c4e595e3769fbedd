"""
用户领域事件 - 在线状态变化
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PresenceChanged:
    """用户上线/下线事件，广播给所有连接"""
    user_id: int
    is_online: bool
    last_active: Optional[datetime] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> dict:
        last_active = self.last_active or self.occurred_at
        return {
            "user_id": self.user_id,
            "is_online": self.is_online,
            "last_active": last_active.isoformat().replace("+00:00", "Z"),
        }
