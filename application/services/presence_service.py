"""Presence registry.

Tracks which users currently hold at least one authenticated connection.
The connection registry calls ``user_online``/``user_offline`` only on the
0→1 and 1→0 binding transitions, so a second device never reaches here.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Dict, List

from application.dto import PresenceDTO
from core.logging_config import get_logger
from domain.common.exceptions import UserNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.user.entity import PresenceRecord
from domain.user.events import PresenceChanged
from infrastructure.realtime.room_bus import RoomBus


logger = get_logger(__name__)

PRESENCE_CHANGED = "presenceChanged"


class PresenceService:
    def __init__(self, *, uow_factory: Callable[..., AbstractUnitOfWork], bus: RoomBus) -> None:
        self._uow_factory = uow_factory
        self._bus = bus
        self._live: Dict[int, PresenceRecord] = {}

    async def user_online(self, user_id: int) -> None:
        now = datetime.now(timezone.utc)
        record = self._live.setdefault(user_id, PresenceRecord())
        previous = (record.is_online, record.last_active)
        record.mark_online(now)
        try:
            async with self._uow_factory() as uow:
                await uow.user_repository.update_presence(user_id, True, now)
        except Exception as exc:
            record.is_online, record.last_active = previous
            logger.warning("presence_online_persist_failed", user_id=user_id, error=str(exc))
            raise
        logger.info("presence_online", user_id=user_id)
        await self._announce(PresenceChanged(user_id=user_id, is_online=True, last_active=now))

    async def user_offline(self, user_id: int) -> None:
        now = datetime.now(timezone.utc)
        record = self._live.setdefault(user_id, PresenceRecord())
        record.mark_offline(now)
        try:
            async with self._uow_factory() as uow:
                await uow.user_repository.update_presence(user_id, False, now)
        except Exception as exc:
            # 实时视图已下线；持久化失败不广播
            logger.error("presence_offline_persist_failed", user_id=user_id, error=str(exc), exc_info=True)
            raise
        logger.info("presence_offline", user_id=user_id)
        await self._announce(PresenceChanged(user_id=user_id, is_online=False, last_active=now))

    async def get(self, user_id: int) -> PresenceDTO:
        """实时视图优先，否则回退到持久化记录"""
        record = self._live.get(user_id)
        if record is not None:
            return PresenceDTO.from_record(user_id, record)
        async with self._uow_factory(readonly=True) as uow:
            user = await uow.user_repository.get_by_id(user_id)
        if user is None:
            raise UserNotFoundException(user_id)
        return PresenceDTO.from_user(user)

    def is_online(self, user_id: int) -> bool:
        record = self._live.get(user_id)
        return bool(record and record.is_online)

    def online_user_ids(self) -> List[int]:
        return sorted(uid for uid, record in self._live.items() if record.is_online)

    async def _announce(self, event: PresenceChanged) -> None:
        await self._bus.broadcast(PRESENCE_CHANGED, event.to_payload())


__all__ = ["PresenceService", "PRESENCE_CHANGED"]
