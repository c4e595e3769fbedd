"""
用户领域实体 - 仅保留实时中心关心的部分：身份与在线状态
"""
from datetime import datetime, timezone
from typing import Optional
from dataclasses import dataclass, field
import re


@dataclass
class PresenceRecord:
    """在线状态记录：is_online 仅在至少一个已认证连接存在时为 True"""

    is_online: bool = False
    last_active: Optional[datetime] = None

    def mark_online(self, now: Optional[datetime] = None) -> None:
        self.is_online = True
        self.last_active = now or datetime.now(timezone.utc)

    def mark_offline(self, now: Optional[datetime] = None) -> None:
        self.is_online = False
        self.last_active = now or datetime.now(timezone.utc)


@dataclass
class User:
    """用户实体 - 账户本身由外部系统维护，这里只读取身份并写回在线状态"""

    id: Optional[int]
    username: str
    is_active: bool = True
    presence: PresenceRecord = field(default_factory=PresenceRecord)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.validate_username()

    def validate_username(self) -> None:
        """业务规则：用户名验证"""
        if len(self.username) < 3:
            raise ValueError("用户名至少需要3个字符")
        if len(self.username) > 30:
            raise ValueError("用户名不能超过30个字符")
        if not re.match(r'^[a-zA-Z0-9_.]+$', self.username):
            raise ValueError("用户名只能包含字母、数字、点和下划线")

    @property
    def is_online(self) -> bool:
        return self.presence.is_online
