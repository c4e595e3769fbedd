"""Typing signal relay.

Typing signals are transient: nothing is persisted. Each connection's open
"is typing" targets are remembered so that a dropped connection can emit
the matching ``is_typing=false`` on the way out.
"""
from __future__ import annotations

from typing import Dict, Optional, Union

from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from domain.realtime.rooms import GLOBAL_CHAT, personal_room
from infrastructure.realtime.room_bus import RoomBus


logger = get_logger(__name__)

TYPING_EVENT = "typingIndicator"


class TypingRelay:
    def __init__(self, *, bus: RoomBus) -> None:
        self._bus = bus
        # connection_id -> {room: target as sent by the client}
        self._active: Dict[int, Dict[str, str]] = {}

    @staticmethod
    def resolve_target(sender_id: int, target: Union[str, int, None]) -> str:
        if target is None or str(target).strip() == "":
            raise DomainValidationException("Typing target is required", field="target")
        raw = str(target).strip()
        if raw == GLOBAL_CHAT:
            return GLOBAL_CHAT
        try:
            user_id = int(raw)
        except ValueError:
            raise DomainValidationException("Unknown typing target", field="target", details={"target": raw})
        if user_id == sender_id:
            raise DomainValidationException("Cannot send typing signals to yourself", field="target")
        return personal_room(user_id)

    async def set_typing(self, connection_id: int, sender_id: int, target: Union[str, int],
                         is_typing: bool) -> None:
        room = self.resolve_target(sender_id, target)
        targets = self._active.setdefault(connection_id, {})
        if is_typing:
            targets[room] = str(target)
        else:
            targets.pop(room, None)
        if not targets:
            self._active.pop(connection_id, None)
        await self._emit(room, sender_id, str(target), bool(is_typing))

    async def clear_connection(self, connection_id: int, sender_id: Optional[int]) -> int:
        """连接断开时为其所有未结束的输入状态补发 is_typing=false"""
        targets = self._active.pop(connection_id, None)
        if not targets or sender_id is None:
            return 0
        for room, target in targets.items():
            await self._emit(room, sender_id, target, False)
        logger.info("typing_cleared_on_drop", connection_id=connection_id, user_id=sender_id, targets=len(targets))
        return len(targets)

    def active_targets(self, connection_id: int) -> Dict[str, str]:
        return dict(self._active.get(connection_id, {}))

    async def _emit(self, room: str, sender_id: int, target: str, is_typing: bool) -> None:
        # 群聊中排除发送者自己的所有连接
        await self._bus.publish(
            room,
            TYPING_EVENT,
            {"user_id": sender_id, "target": target, "is_typing": is_typing},
            sender_id=sender_id,
            exclude_user_id=sender_id if room == GLOBAL_CHAT else None,
        )


__all__ = ["TypingRelay", "TYPING_EVENT"]
