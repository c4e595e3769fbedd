"""
通知仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Notification


class NotificationRepository(ABC):

    @abstractmethod
    async def create(self, notification: Notification) -> Notification:
        """保存通知"""

    @abstractmethod
    async def get_by_id(self, notification_id: int) -> Optional[Notification]:
        """根据ID获取通知"""

    @abstractmethod
    async def list_for(self, recipient_id: int, skip: int = 0, limit: int = 100) -> List[Notification]:
        """接收者的通知，按创建时间倒序"""

    @abstractmethod
    async def count_unread(self, recipient_id: int) -> int:
        """统计未读"""

    @abstractmethod
    async def mark_read(self, notification_id: int) -> None:
        """标记单条已读"""

    @abstractmethod
    async def mark_all_read(self, recipient_id: int) -> int:
        """全部标记已读，返回更新条数"""

    @abstractmethod
    async def delete(self, notification_id: int) -> bool:
        """删除单条"""

    @abstractmethod
    async def delete_all(self, recipient_id: int) -> int:
        """删除接收者全部通知"""
