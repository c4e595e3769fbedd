"""
消息仓储实现 - 私信与群聊
"""
from datetime import datetime, timezone
from typing import Optional, List, Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, update, delete, or_, and_

from domain.message.entity import DirectMessage, LiveChatMessage, Attachment, AudioClip
from domain.message.repository import DirectMessageRepository, LiveChatMessageRepository
from infrastructure.models.message import DirectMessageModel, LiveChatMessageModel, LiveChatSeenModel


def _pair_clause(user_id: int, peer_id: int):
    return or_(
        and_(DirectMessageModel.sender_id == user_id, DirectMessageModel.recipient_id == peer_id),
        and_(DirectMessageModel.sender_id == peer_id, DirectMessageModel.recipient_id == user_id),
    )


class SQLAlchemyDirectMessageRepository(DirectMessageRepository):
    """私信仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: DirectMessageModel) -> DirectMessage:
        attachment = None
        if model.attachment_type and model.attachment_url:
            attachment = Attachment(
                type=model.attachment_type,
                url=model.attachment_url,
                name=model.attachment_name,
                size=model.attachment_size,
            )
        return DirectMessage(
            id=model.id,
            sender_id=model.sender_id,
            recipient_id=model.recipient_id,
            text=model.text,
            attachment=attachment,
            is_read=model.is_read,
            created_at=model.created_at,
        )

    def _to_model(self, entity: DirectMessage) -> DirectMessageModel:
        att = entity.attachment
        return DirectMessageModel(
            id=entity.id,
            sender_id=entity.sender_id,
            recipient_id=entity.recipient_id,
            text=entity.text,
            attachment_type=att.type if att else None,
            attachment_url=att.url if att else None,
            attachment_name=att.name if att else None,
            attachment_size=att.size if att else None,
            is_read=entity.is_read,
            created_at=entity.created_at or datetime.now(timezone.utc),
        )

    async def create(self, message: DirectMessage) -> DirectMessage:
        db_msg = self._to_model(message)
        self.session.add(db_msg)
        await self.session.flush()
        await self.session.refresh(db_msg)
        return self._to_entity(db_msg)

    async def get_by_id(self, message_id: int) -> Optional[DirectMessage]:
        result = await self.session.execute(
            select(DirectMessageModel).where(DirectMessageModel.id == message_id)
        )
        db_msg = result.scalar_one_or_none()
        return self._to_entity(db_msg) if db_msg else None

    async def list_conversation(self, user_id: int, peer_id: int, skip: int = 0,
                                limit: int = 100) -> List[DirectMessage]:
        query = (
            select(DirectMessageModel)
            .where(_pair_clause(user_id, peer_id))
            # created_at 可能相同，用 id 保证顺序稳定
            .order_by(DirectMessageModel.created_at.asc(), DirectMessageModel.id.asc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_peer_ids(self, user_id: int) -> List[int]:
        result = await self.session.execute(
            select(DirectMessageModel.sender_id, DirectMessageModel.recipient_id)
            .where(or_(DirectMessageModel.sender_id == user_id, DirectMessageModel.recipient_id == user_id))
            .order_by(DirectMessageModel.created_at.desc(), DirectMessageModel.id.desc())
        )
        peers: List[int] = []
        seen = set()
        for sender_id, recipient_id in result.all():
            peer_id = recipient_id if sender_id == user_id else sender_id
            if peer_id not in seen:
                seen.add(peer_id)
                peers.append(peer_id)
        return peers

    async def last_message(self, user_id: int, peer_id: int) -> Optional[DirectMessage]:
        result = await self.session.execute(
            select(DirectMessageModel)
            .where(_pair_clause(user_id, peer_id))
            .order_by(DirectMessageModel.created_at.desc(), DirectMessageModel.id.desc())
            .limit(1)
        )
        db_msg = result.scalar_one_or_none()
        return self._to_entity(db_msg) if db_msg else None

    async def mark_read(self, message_id: int) -> None:
        await self.session.execute(
            update(DirectMessageModel)
            .where(DirectMessageModel.id == message_id)
            .values(is_read=True)
        )

    async def mark_all_read(self, recipient_id: int, sender_id: int) -> int:
        result = await self.session.execute(
            update(DirectMessageModel)
            .where(
                DirectMessageModel.recipient_id == recipient_id,
                DirectMessageModel.sender_id == sender_id,
                DirectMessageModel.is_read.is_(False),
            )
            .values(is_read=True)
        )
        return result.rowcount or 0

    async def count_unread(self, recipient_id: int, sender_id: Optional[int] = None) -> int:
        query = (
            select(func.count())
            .select_from(DirectMessageModel)
            .where(DirectMessageModel.recipient_id == recipient_id, DirectMessageModel.is_read.is_(False))
        )
        if sender_id is not None:
            query = query.where(DirectMessageModel.sender_id == sender_id)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def delete(self, message_id: int) -> bool:
        result = await self.session.execute(
            delete(DirectMessageModel).where(DirectMessageModel.id == message_id)
        )
        return (result.rowcount or 0) > 0

    async def delete_sent_to(self, sender_id: int, peer_id: int) -> int:
        result = await self.session.execute(
            delete(DirectMessageModel).where(
                DirectMessageModel.sender_id == sender_id,
                DirectMessageModel.recipient_id == peer_id,
            )
        )
        return result.rowcount or 0


class SQLAlchemyLiveChatMessageRepository(LiveChatMessageRepository):
    """群聊消息仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _seen_by(self, message_ids: List[int]) -> dict:
        seen: dict = {mid: set() for mid in message_ids}
        if not message_ids:
            return seen
        result = await self.session.execute(
            select(LiveChatSeenModel.message_id, LiveChatSeenModel.user_id)
            .where(LiveChatSeenModel.message_id.in_(message_ids))
        )
        for message_id, user_id in result.all():
            seen[message_id].add(user_id)
        return seen

    def _to_entity(self, model: LiveChatMessageModel, seen_by: set) -> LiveChatMessage:
        audio = AudioClip(url=model.audio_url, duration=model.audio_duration or 0.0) if model.audio_url else None
        return LiveChatMessage(
            id=model.id,
            sender_id=model.sender_id,
            text=model.text,
            audio=audio,
            seen_by=set(seen_by),
            created_at=model.created_at,
        )

    async def create(self, message: LiveChatMessage) -> LiveChatMessage:
        db_msg = LiveChatMessageModel(
            sender_id=message.sender_id,
            text=message.text,
            audio_url=message.audio.url if message.audio else None,
            audio_duration=message.audio.duration if message.audio else None,
            created_at=message.created_at or datetime.now(timezone.utc),
        )
        self.session.add(db_msg)
        await self.session.flush()
        for user_id in message.seen_by:
            self.session.add(LiveChatSeenModel(message_id=db_msg.id, user_id=user_id))
        await self.session.flush()
        await self.session.refresh(db_msg)
        return self._to_entity(db_msg, message.seen_by)

    async def get_by_id(self, message_id: int) -> Optional[LiveChatMessage]:
        result = await self.session.execute(
            select(LiveChatMessageModel).where(LiveChatMessageModel.id == message_id)
        )
        db_msg = result.scalar_one_or_none()
        if not db_msg:
            return None
        seen = await self._seen_by([db_msg.id])
        return self._to_entity(db_msg, seen[db_msg.id])

    async def list_recent(self, limit: int = 50) -> List[LiveChatMessage]:
        result = await self.session.execute(
            select(LiveChatMessageModel)
            .order_by(LiveChatMessageModel.created_at.desc(), LiveChatMessageModel.id.desc())
            .limit(limit)
        )
        models = list(result.scalars().all())
        models.reverse()  # 返回时间正序（旧 -> 新）
        seen = await self._seen_by([m.id for m in models])
        return [self._to_entity(m, seen[m.id]) for m in models]

    async def add_seen(self, message_ids: Iterable[int], user_id: int) -> int:
        ids = sorted(set(message_ids))
        if not ids:
            return 0
        existing_result = await self.session.execute(
            select(LiveChatMessageModel.id).where(LiveChatMessageModel.id.in_(ids))
        )
        existing = set(existing_result.scalars().all())
        already_result = await self.session.execute(
            select(LiveChatSeenModel.message_id).where(
                LiveChatSeenModel.message_id.in_(ids),
                LiveChatSeenModel.user_id == user_id,
            )
        )
        already = set(already_result.scalars().all())
        # 未知的消息ID直接忽略，已确认过的不重复写入
        to_add = [mid for mid in ids if mid in existing and mid not in already]
        for message_id in to_add:
            self.session.add(LiveChatSeenModel(message_id=message_id, user_id=user_id))
        if to_add:
            await self.session.flush()
        return len(to_add)

    async def delete(self, message_id: int) -> bool:
        await self.session.execute(
            delete(LiveChatSeenModel).where(LiveChatSeenModel.message_id == message_id)
        )
        result = await self.session.execute(
            delete(LiveChatMessageModel).where(LiveChatMessageModel.id == message_id)
        )
        return (result.rowcount or 0) > 0
