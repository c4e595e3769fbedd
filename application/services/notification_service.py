"""
通知中继 - 持久化后推送到接收者的个人房间

通知由外部业务（点赞、评论、关注、勋章……）产生，这里不关心触发原因。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from application.dto import NotificationDTO
from core.logging_config import get_logger
from domain.common.exceptions import (
    MessagePermissionException,
    NotificationNotFoundException,
    UserNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.notification.entity import Notification
from domain.realtime.rooms import personal_room
from infrastructure.realtime.room_bus import RoomBus


logger = get_logger(__name__)

NOTIFICATION_EVENT = "notification"


class NotificationRelay:
    def __init__(self, *, uow_factory: Callable[..., AbstractUnitOfWork], bus: RoomBus) -> None:
        self._uow_factory = uow_factory
        self._bus = bus

    async def notify(
        self,
        recipient_id: int,
        kind: str,
        payload: Optional[Dict[str, Any]] = None,
        sender_id: Optional[int] = None,
    ) -> NotificationDTO:
        notification = Notification(
            id=None,
            recipient_id=recipient_id,
            kind=kind,
            payload=dict(payload or {}),
            sender_id=sender_id,
            created_at=datetime.now(timezone.utc),
        )
        async with self._uow_factory() as uow:
            if not await uow.user_repository.exists(recipient_id):
                raise UserNotFoundException(recipient_id)
            saved = await uow.notification_repository.create(notification)

        dto = NotificationDTO.from_entity(saved)
        await self._bus.publish(
            personal_room(recipient_id),
            NOTIFICATION_EVENT,
            dto.model_dump(mode="json"),
            sender_id=sender_id,
        )
        logger.info("notification_sent", notification_id=dto.id, recipient_id=recipient_id, kind=dto.kind)
        return dto

    async def list_for(self, user_id: int, skip: int = 0, limit: int = 100) -> List[NotificationDTO]:
        async with self._uow_factory(readonly=True) as uow:
            items = await uow.notification_repository.list_for(user_id, skip=skip, limit=limit)
        return [NotificationDTO.from_entity(n) for n in items]

    async def unread_count(self, user_id: int) -> int:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.notification_repository.count_unread(user_id)

    async def mark_read(self, notification_id: int, user_id: int) -> NotificationDTO:
        async with self._uow_factory() as uow:
            notification = await self._get_owned(uow, notification_id, user_id, action="read")
            if not notification.is_read:
                await uow.notification_repository.mark_read(notification_id)
                notification.is_read = True
        return NotificationDTO.from_entity(notification)

    async def mark_all_read(self, user_id: int) -> int:
        async with self._uow_factory() as uow:
            return await uow.notification_repository.mark_all_read(user_id)

    async def delete(self, notification_id: int, user_id: int) -> None:
        async with self._uow_factory() as uow:
            await self._get_owned(uow, notification_id, user_id, action="delete")
            await uow.notification_repository.delete(notification_id)
        logger.info("notification_deleted", notification_id=notification_id, user_id=user_id)

    async def delete_all(self, user_id: int) -> int:
        async with self._uow_factory() as uow:
            count = await uow.notification_repository.delete_all(user_id)
        logger.info("notifications_cleared", user_id=user_id, count=count)
        return count

    @staticmethod
    async def _get_owned(uow: AbstractUnitOfWork, notification_id: int, user_id: int, *, action: str) -> Notification:
        notification = await uow.notification_repository.get_by_id(notification_id)
        if notification is None:
            raise NotificationNotFoundException(notification_id)
        if not notification.belongs_to(user_id):
            raise MessagePermissionException(action, notification_id)
        return notification


__all__ = ["NotificationRelay", "NOTIFICATION_EVENT"]
