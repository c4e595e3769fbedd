"""
Realtime port and message DTOs (contracts-first).

This module defines the boundary DTOs and the protocols the application
layer depends on, so it stays decoupled from the concrete connection
table, transports and broadcast implementations (infrastructure).
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol
from pydantic import BaseModel, Field
from datetime import datetime, timezone


def _utc_now_z() -> str:
    ts = datetime.now(timezone.utc)
    s = ts.isoformat()
    return s.replace("+00:00", "Z")


class Envelope(BaseModel):
    """Unified WS message envelope passed around the system.

    Fields:
      - type: client-facing event name (message/newGroupMessage/presenceChanged/...)
      - room: optional room channel
      - data: payload (JSON-serializable)
      - ts: server-generated UTC timestamp (ISO8601 with Z)
      - sender_id: optional user id set by server
      - exclude_user_id: fan-out skips this user's connections; never sent to clients
    """

    type: str
    room: str | None = None
    data: Any = Field(default_factory=dict)
    ts: str = Field(default_factory=_utc_now_z)
    sender_id: int | None = None
    exclude_user_id: int | None = Field(default=None, exclude=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


Handler = Callable[[Envelope], Awaitable[None]]


class Transport(Protocol):
    """Outbound half of a client connection (a WebSocket in production)."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class PresenceListener(Protocol):
    """Receives the 0→1 and 1→0 binding transitions of a user."""

    async def user_online(self, user_id: int) -> None: ...

    async def user_offline(self, user_id: int) -> None: ...


class RealtimeBrokerPort(Protocol):
    """Abstraction for room broadcast.

    The shipped implementation is in-memory (single process); an external
    broker can take its place without changing the room bus.
    """

    async def publish(self, room: str, envelope: Envelope) -> None: ...

    async def subscribe(self, handler: Handler) -> None: ...

    async def aclose(self) -> None: ...  # pragma: no cover - optional


__all__ = ["Envelope", "Handler", "Transport", "PresenceListener", "RealtimeBrokerPort"]
