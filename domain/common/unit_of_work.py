"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.user.repository import UserRepository
from domain.message.repository import DirectMessageRepository, LiveChatMessageRepository
from domain.notification.repository import NotificationRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象

    正常退出时自动提交；发布实时事件的调用方必须在退出上下文（提交完成）之后再发布。
    """

    user_repository: UserRepository
    message_repository: DirectMessageRepository
    live_chat_repository: LiveChatMessageRepository
    notification_repository: NotificationRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.user_repository = None  # type: ignore[assignment]
        self.message_repository = None  # type: ignore[assignment]
        self.live_chat_repository = None  # type: ignore[assignment]
        self.notification_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
