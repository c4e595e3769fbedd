"""
消息仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List, Iterable

from .entity import DirectMessage, LiveChatMessage


class DirectMessageRepository(ABC):
    """私信仓储抽象接口"""

    @abstractmethod
    async def create(self, message: DirectMessage) -> DirectMessage:
        """保存私信"""

    @abstractmethod
    async def get_by_id(self, message_id: int) -> Optional[DirectMessage]:
        """根据ID获取私信"""

    @abstractmethod
    async def list_conversation(self, user_id: int, peer_id: int, skip: int = 0,
                                limit: int = 100) -> List[DirectMessage]:
        """双方会话，按创建时间正序"""

    @abstractmethod
    async def list_peer_ids(self, user_id: int) -> List[int]:
        """与该用户有过会话的对端ID（按最近消息倒序）"""

    @abstractmethod
    async def last_message(self, user_id: int, peer_id: int) -> Optional[DirectMessage]:
        """双方最近一条消息"""

    @abstractmethod
    async def mark_read(self, message_id: int) -> None:
        """标记单条已读"""

    @abstractmethod
    async def mark_all_read(self, recipient_id: int, sender_id: int) -> int:
        """将来自 sender 的未读消息全部标记已读，返回更新条数"""

    @abstractmethod
    async def count_unread(self, recipient_id: int, sender_id: Optional[int] = None) -> int:
        """统计未读（每次请求实时计算）"""

    @abstractmethod
    async def delete(self, message_id: int) -> bool:
        """删除单条"""

    @abstractmethod
    async def delete_sent_to(self, sender_id: int, peer_id: int) -> int:
        """删除 sender 发给 peer 的全部消息（只删自己发出的），返回删除条数"""


class LiveChatMessageRepository(ABC):
    """群聊消息仓储抽象接口"""

    @abstractmethod
    async def create(self, message: LiveChatMessage) -> LiveChatMessage:
        """保存群聊消息（含 seen_by 初始集合）"""

    @abstractmethod
    async def get_by_id(self, message_id: int) -> Optional[LiveChatMessage]:
        """根据ID获取群聊消息"""

    @abstractmethod
    async def list_recent(self, limit: int = 50) -> List[LiveChatMessage]:
        """最近 N 条，按创建时间正序返回"""

    @abstractmethod
    async def add_seen(self, message_ids: Iterable[int], user_id: int) -> int:
        """集合语义追加 seen_by，返回新增条数"""

    @abstractmethod
    async def delete(self, message_id: int) -> bool:
        """删除单条"""
