"""Room/topic bus.

Publishes envelopes through the broker port and fans them out to the
local members of a room. Delivery is at-most-once: a connection that joins
after a publish never sees it, except for the retained tick of a topic.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from application.ports.realtime import Envelope, RealtimeBrokerPort
from core.logging_config import get_logger
from infrastructure.realtime.connection_manager import ConnectionRegistry


logger = get_logger(__name__)


class RoomBus:
    def __init__(self, *, broker: RealtimeBrokerPort, registry: ConnectionRegistry) -> None:
        self._broker = broker
        self._registry = registry
        self._retained: Dict[str, Envelope] = {}
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        await self._broker.subscribe(self.on_broker_event)
        self._started = True

    async def aclose(self) -> None:
        await self._broker.aclose()
        self._started = False

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    # -------------------- publishing --------------------
    async def publish(
        self,
        room: str,
        event: str,
        payload: Any,
        *,
        sender_id: Optional[int] = None,
        exclude_user_id: Optional[int] = None,
        retain: bool = False,
    ) -> Envelope:
        envelope = Envelope(
            type=event,
            room=room,
            data=payload,
            sender_id=sender_id,
            exclude_user_id=exclude_user_id,
        )
        if retain:
            self._retained[room] = envelope
        await self._broker.publish(room, envelope)
        return envelope

    async def broadcast(self, event: str, payload: Any) -> int:
        """发送给所有已接入的连接（包括匿名连接）"""
        wire = Envelope(type=event, data=payload).to_wire()
        delivered = 0
        for connection_id in self._registry.connection_ids():
            if await self._registry.enqueue(connection_id, wire):
                delivered += 1
        logger.debug("realtime_broadcast", type=event, delivered=delivered)
        return delivered

    async def send_to(self, connection_id: int, event: str, payload: Any = None, *,
                      room: Optional[str] = None) -> bool:
        envelope = Envelope(type=event, room=room, data=payload if payload is not None else {})
        return await self._registry.enqueue(connection_id, envelope.to_wire())

    def retained(self, room: str) -> Optional[Envelope]:
        return self._retained.get(room)

    async def replay_retained(self, connection_id: int, room: str) -> bool:
        envelope = self._retained.get(room)
        if envelope is None:
            return False
        return await self._registry.enqueue(connection_id, envelope.to_wire())

    # -------------------- broker callback --------------------
    async def on_broker_event(self, envelope: Envelope) -> None:
        """Local fan-out: one copy per member connection, in publish order per room."""
        room = envelope.room
        if not room:
            logger.warning("realtime_event_without_room", type=envelope.type)
            return
        wire = envelope.to_wire()
        delivered = 0
        async with self._registry.room_lock(room):
            for connection_id in sorted(self._registry.members(room)):
                if (
                    envelope.exclude_user_id is not None
                    and self._registry.user_of(connection_id) == envelope.exclude_user_id
                ):
                    continue
                if await self._registry.enqueue(connection_id, wire):
                    delivered += 1
        logger.debug("realtime_event_dispatched", type=envelope.type, room=room, delivered=delivered)


__all__ = ["RoomBus"]
