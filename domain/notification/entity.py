"""
通知领域实体 - 由外部业务（点赞、评论、关注、勋章、签到……）产生，实时中心只负责投递
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from domain.common.exceptions import DomainValidationException


@dataclass
class Notification:
    id: Optional[int]
    recipient_id: int
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)
    sender_id: Optional[int] = None
    is_read: bool = False
    created_at: Optional[datetime] = None

    def __post_init__(self):
        kind = (self.kind or "").strip()
        if not kind:
            raise DomainValidationException("Notification kind is required", field="kind")
        if len(kind) > 50:
            raise DomainValidationException("Notification kind too long", field="kind", details={"max": 50})
        self.kind = kind

    def belongs_to(self, user_id: int) -> bool:
        return self.recipient_id == user_id
