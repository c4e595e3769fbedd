"""
通知仓储实现
"""
from datetime import datetime, timezone
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, update, delete

from domain.notification.entity import Notification
from domain.notification.repository import NotificationRepository
from infrastructure.models.notification import NotificationModel


class SQLAlchemyNotificationRepository(NotificationRepository):
    """通知仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: NotificationModel) -> Notification:
        return Notification(
            id=model.id,
            recipient_id=model.recipient_id,
            sender_id=model.sender_id,
            kind=model.kind,
            payload=dict(model.payload or {}),
            is_read=model.is_read,
            created_at=model.created_at,
        )

    async def create(self, notification: Notification) -> Notification:
        db_obj = NotificationModel(
            recipient_id=notification.recipient_id,
            sender_id=notification.sender_id,
            kind=notification.kind,
            payload=notification.payload,
            is_read=notification.is_read,
            created_at=notification.created_at or datetime.now(timezone.utc),
        )
        self.session.add(db_obj)
        await self.session.flush()
        await self.session.refresh(db_obj)
        return self._to_entity(db_obj)

    async def get_by_id(self, notification_id: int) -> Optional[Notification]:
        result = await self.session.execute(
            select(NotificationModel).where(NotificationModel.id == notification_id)
        )
        db_obj = result.scalar_one_or_none()
        return self._to_entity(db_obj) if db_obj else None

    async def list_for(self, recipient_id: int, skip: int = 0, limit: int = 100) -> List[Notification]:
        result = await self.session.execute(
            select(NotificationModel)
            .where(NotificationModel.recipient_id == recipient_id)
            .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count_unread(self, recipient_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(NotificationModel)
            .where(NotificationModel.recipient_id == recipient_id, NotificationModel.is_read.is_(False))
        )
        return result.scalar() or 0

    async def mark_read(self, notification_id: int) -> None:
        await self.session.execute(
            update(NotificationModel).where(NotificationModel.id == notification_id).values(is_read=True)
        )

    async def mark_all_read(self, recipient_id: int) -> int:
        result = await self.session.execute(
            update(NotificationModel)
            .where(NotificationModel.recipient_id == recipient_id, NotificationModel.is_read.is_(False))
            .values(is_read=True)
        )
        return result.rowcount or 0

    async def delete(self, notification_id: int) -> bool:
        result = await self.session.execute(
            delete(NotificationModel).where(NotificationModel.id == notification_id)
        )
        return (result.rowcount or 0) > 0

    async def delete_all(self, recipient_id: int) -> int:
        result = await self.session.execute(
            delete(NotificationModel).where(NotificationModel.recipient_id == recipient_id)
        )
        return result.rowcount or 0
