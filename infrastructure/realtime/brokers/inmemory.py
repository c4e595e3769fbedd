"""In-memory implementation of RealtimeBrokerPort.

Single-process only. Handlers run inline in publish order, so envelopes
published to one room reach the local fan-out in program order.
"""
from __future__ import annotations

from typing import List

from application.ports.realtime import Envelope, RealtimeBrokerPort, Handler
from core.logging_config import get_logger


logger = get_logger(__name__)


class InMemoryRealtimeBroker(RealtimeBrokerPort):
    def __init__(self) -> None:
        self._handlers: List[Handler] = []
        self._closed = False

    async def publish(self, room: str, envelope: Envelope) -> None:  # type: ignore[override]
        if self._closed:
            logger.warning("broker_publish_after_close", room=room, type=envelope.type)
            return
        if envelope.room is None:
            envelope = envelope.model_copy(update={"room": room})
        for h in list(self._handlers):
            await h(envelope)

    async def subscribe(self, handler: Handler) -> None:  # type: ignore[override]
        self._handlers.append(handler)

    async def aclose(self) -> None:  # type: ignore[override]
        self._closed = True
        self._handlers.clear()
