"""
消息应用服务 - 私信与群聊

所有写操作都遵循“先写后推”：在 Unit of Work 提交之后才发布实时事件，
写入失败时不会产生任何推送。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from application.dto import (
    AttachmentDTO,
    AudioClipDTO,
    ContactDTO,
    DirectMessageDTO,
    LiveChatMessageDTO,
)
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import (
    MessageNotFoundException,
    MessagePermissionException,
    UserNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.message.entity import Attachment, AudioClip, DirectMessage, LiveChatMessage
from domain.realtime.rooms import GLOBAL_CHAT, personal_room
from infrastructure.realtime.room_bus import RoomBus


logger = get_logger(__name__)

DIRECT_MESSAGE_EVENT = "message"
GROUP_MESSAGE_EVENT = "newGroupMessage"


class MessagingService:
    def __init__(self, *, uow_factory: Callable[..., AbstractUnitOfWork], bus: RoomBus) -> None:
        self._uow_factory = uow_factory
        self._bus = bus

    # -------------------- 私信 --------------------
    async def send_direct(
        self,
        sender_id: int,
        recipient_id: int,
        text: Optional[str] = None,
        attachment: Optional[AttachmentDTO] = None,
    ) -> DirectMessageDTO:
        """持久化私信，提交后推送到接收者的个人房间"""
        message = DirectMessage(
            id=None,
            sender_id=sender_id,
            recipient_id=recipient_id,
            text=text,
            attachment=Attachment(**attachment.model_dump()) if attachment else None,
            created_at=datetime.now(timezone.utc),
        )
        async with self._uow_factory() as uow:
            if not await uow.user_repository.exists(recipient_id):
                raise UserNotFoundException(recipient_id)
            saved = await uow.message_repository.create(message)

        dto = DirectMessageDTO.from_entity(saved)
        await self._bus.publish(
            personal_room(recipient_id),
            DIRECT_MESSAGE_EVENT,
            dto.model_dump(mode="json"),
            sender_id=sender_id,
        )
        logger.info("direct_message_sent", message_id=dto.id, sender_id=sender_id, recipient_id=recipient_id)
        return dto

    async def list_conversation(self, user_id: int, peer_id: int, skip: int = 0,
                                limit: int = 100) -> List[DirectMessageDTO]:
        async with self._uow_factory(readonly=True) as uow:
            messages = await uow.message_repository.list_conversation(user_id, peer_id, skip=skip, limit=limit)
        return [DirectMessageDTO.from_entity(m) for m in messages]

    async def list_contacts(self, user_id: int) -> List[ContactDTO]:
        """会话列表，按最后一条消息时间倒序"""
        contacts: List[ContactDTO] = []
        async with self._uow_factory(readonly=True) as uow:
            peer_ids = await uow.message_repository.list_peer_ids(user_id)
            users = {u.id: u for u in await uow.user_repository.get_by_ids(peer_ids)}
            for peer_id in peer_ids:
                last = await uow.message_repository.last_message(user_id, peer_id)
                unread = await uow.message_repository.count_unread(user_id, sender_id=peer_id)
                peer = users.get(peer_id)
                contacts.append(
                    ContactDTO(
                        peer_id=peer_id,
                        username=peer.username if peer else None,
                        is_online=peer.is_online if peer else False,
                        last_message=DirectMessageDTO.from_entity(last) if last else None,
                        last_message_at=last.created_at if last else None,
                        unread_count=unread,
                    )
                )
        return contacts

    async def mark_read(self, message_id: int, user_id: int) -> DirectMessageDTO:
        async with self._uow_factory() as uow:
            message = await uow.message_repository.get_by_id(message_id)
            if message is None:
                raise MessageNotFoundException(message_id)
            if not message.can_be_read_by(user_id):
                raise MessagePermissionException("read", message_id)
            if not message.is_read:
                await uow.message_repository.mark_read(message_id)
                message.is_read = True
        return DirectMessageDTO.from_entity(message)

    async def mark_all_read(self, user_id: int, peer_id: int) -> int:
        async with self._uow_factory() as uow:
            count = await uow.message_repository.mark_all_read(recipient_id=user_id, sender_id=peer_id)
        logger.info("direct_messages_marked_read", user_id=user_id, peer_id=peer_id, count=count)
        return count

    async def unread_count(self, user_id: int) -> int:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.message_repository.count_unread(user_id)

    async def delete_direct(self, message_id: int, user_id: int) -> None:
        async with self._uow_factory() as uow:
            message = await uow.message_repository.get_by_id(message_id)
            if message is None:
                raise MessageNotFoundException(message_id)
            if not message.can_be_deleted_by(user_id):
                raise MessagePermissionException("delete", message_id)
            await uow.message_repository.delete(message_id)
        logger.info("direct_message_deleted", message_id=message_id, user_id=user_id)

    async def clear_conversation(self, user_id: int, peer_id: int) -> int:
        async with self._uow_factory() as uow:
            count = await uow.message_repository.delete_sent_to(user_id, peer_id)
        logger.info("conversation_cleared", user_id=user_id, peer_id=peer_id, count=count)
        return count

    # -------------------- 群聊 --------------------
    async def send_group(
        self,
        sender_id: int,
        text: Optional[str] = None,
        audio: Optional[AudioClipDTO] = None,
    ) -> LiveChatMessageDTO:
        message = LiveChatMessage.compose(
            sender_id,
            text=text,
            audio=AudioClip(url=audio.url, duration=audio.duration) if audio else None,
        )
        async with self._uow_factory() as uow:
            saved = await uow.live_chat_repository.create(message)

        dto = LiveChatMessageDTO.from_entity(saved)
        await self._bus.publish(GLOBAL_CHAT, GROUP_MESSAGE_EVENT, dto.model_dump(mode="json"), sender_id=sender_id)
        logger.info("group_message_sent", message_id=dto.id, sender_id=sender_id)
        return dto

    async def list_group_history(self, limit: Optional[int] = None) -> List[LiveChatMessageDTO]:
        """最近 N 条群聊消息，按时间正序返回"""
        limit = limit or settings.realtime.group_history_limit
        async with self._uow_factory(readonly=True) as uow:
            messages = await uow.live_chat_repository.list_recent(limit)
        return [LiveChatMessageDTO.from_entity(m) for m in messages]

    async def mark_seen(self, message_ids: Iterable[int], user_id: int) -> int:
        async with self._uow_factory() as uow:
            return await uow.live_chat_repository.add_seen(message_ids, user_id)

    async def delete_group(self, message_id: int, user_id: int) -> None:
        async with self._uow_factory() as uow:
            message = await uow.live_chat_repository.get_by_id(message_id)
            if message is None:
                raise MessageNotFoundException(message_id)
            if not message.can_be_deleted_by(user_id):
                raise MessagePermissionException("delete", message_id)
            await uow.live_chat_repository.delete(message_id)
        logger.info("group_message_deleted", message_id=message_id, user_id=user_id)


__all__ = ["MessagingService", "DIRECT_MESSAGE_EVENT", "GROUP_MESSAGE_EVENT"]
