"""Application service for realtime WebSocket workflows.

Keeps application logic (identity verification, topic ACL, orchestration)
separate from the concrete connection registry and broadcast transport.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional, Union

from application.ports.realtime import Transport
from application.services.presence_service import PresenceService
from application.services.token_service import TokenService
from application.services.typing_service import TypingRelay
from core.exceptions import UnauthorizedException
from core.logging_config import get_logger
from domain.common.exceptions import (
    IdentityMismatchException,
    RoomAccessDeniedException,
    TopicNotFoundException,
)
from domain.realtime.rooms import GLOBAL_CHAT, is_known_topic, personal_room, quest_room_owner
from infrastructure.realtime.connection_manager import ConnectionRegistry
from infrastructure.realtime.room_bus import RoomBus


logger = get_logger(__name__)

CAPABILITIES = ["chat", "direct_messages", "notifications", "presence", "typing", "topics"]


class HubService:
    def __init__(
        self,
        *,
        registry: ConnectionRegistry,
        bus: RoomBus,
        presence: PresenceService,
        typing: TypingRelay,
        token_service: TokenService,
    ) -> None:
        self._registry = registry
        self._bus = bus
        self._presence = presence
        self._typing = typing
        self._tokens = token_service
        # connection_id -> identity verified during the handshake
        self._handshake: Dict[int, int] = {}

    # Connection lifecycle management
    async def open(self, transport: Transport, verified_user_id: Optional[int] = None) -> int:
        """Admit a connection anonymously and greet it."""
        connection_id = await self._registry.admit(transport)
        if verified_user_id is not None:
            self._handshake[connection_id] = verified_user_id
        await self._bus.send_to(
            connection_id,
            "welcome",
            {
                "connection_id": connection_id,
                "server_time": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                "capabilities": CAPABILITIES,
            },
        )
        logger.info("connection_opened", connection_id=connection_id, handshake_user_id=verified_user_id)
        return connection_id

    async def authenticate(
        self,
        connection_id: int,
        claimed_user_id: Union[int, str, None] = None,
        token: Optional[str] = None,
    ) -> int:
        """
        认证连接

        Only a verified identity is accepted: the handshake token, or a token
        carried in the signal. A claimed id that differs is rejected.
        """
        verified = self._handshake.get(connection_id)
        if token:
            token_user_id = await self._tokens.verify_access_token(token)
            if token_user_id is None:
                raise UnauthorizedException("Invalid token")
            if verified is not None and token_user_id != verified:
                raise IdentityMismatchException(claimed=token_user_id, verified=verified)
            verified = token_user_id
        if verified is None:
            raise UnauthorizedException("Authentication required")
        if claimed_user_id is not None and str(claimed_user_id).strip() != str(verified):
            raise IdentityMismatchException(claimed=claimed_user_id, verified=verified)

        await self._registry.bind(connection_id, verified)
        self._handshake[connection_id] = verified
        await self._registry.join(connection_id, personal_room(verified))
        await self._registry.join(connection_id, GLOBAL_CHAT)
        await self._bus.send_to(
            connection_id,
            "authenticated",
            {"user_id": verified, "rooms": sorted(self._registry.rooms_of(connection_id))},
        )
        logger.info("connection_authenticated", connection_id=connection_id, user_id=verified)
        return verified

    async def subscribe_to_topic(self, connection_id: int, topic: str) -> None:
        topic = (topic or "").strip()
        self._ensure_can_subscribe(connection_id, topic)
        await self._registry.join(connection_id, topic)
        await self._bus.send_to(connection_id, "subscribed", {"topic": topic}, room=topic)
        await self._bus.replay_retained(connection_id, topic)

    async def unsubscribe_from_topic(self, connection_id: int, topic: str) -> None:
        topic = (topic or "").strip()
        if not is_known_topic(topic):
            raise TopicNotFoundException(topic)
        await self._registry.leave(connection_id, topic)
        await self._bus.send_to(connection_id, "unsubscribed", {"topic": topic}, room=topic)

    async def typing(self, connection_id: int, target: Union[str, int], is_typing: bool) -> None:
        sender_id = self._registry.user_of(connection_id)
        if sender_id is None:
            raise UnauthorizedException("Authentication required")
        await self._typing.set_typing(connection_id, sender_id, target, is_typing)

    async def ping(self, connection_id: int) -> bool:
        return await self._bus.send_to(connection_id, "ping")

    async def pong(self, connection_id: int) -> None:
        await self._bus.send_to(connection_id, "pong")

    async def send_error(self, connection_id: int, error: dict) -> None:
        await self._bus.send_to(connection_id, "error", error)

    async def close(self, connection_id: int) -> None:
        """Drop the connection first, then clear its typing signals."""
        user_id = self._registry.user_of(connection_id)
        self._handshake.pop(connection_id, None)
        try:
            await self._registry.drop(connection_id)
        finally:
            await self._typing.clear_connection(connection_id, user_id)

    # Expose for API convenience
    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def presence(self) -> PresenceService:
        return self._presence

    # -------------------- ACL helpers --------------------
    def _ensure_can_subscribe(self, connection_id: int, topic: str) -> None:
        if not is_known_topic(topic):
            raise TopicNotFoundException(topic)
        owner = quest_room_owner(topic)
        if owner is not None and self._registry.user_of(connection_id) != owner:
            raise RoomAccessDeniedException(topic)


__all__ = ["HubService", "CAPABILITIES"]
