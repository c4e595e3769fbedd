"""In-process connection registry.

Keeps track of admitted connections, their user bindings and room
memberships, and owns the per-connection outbound queues. Room tables are
guarded per room and bindings per user, so independent keys never contend.
Fan-out across rooms is done by the room bus on top of this registry.
"""
from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from application.ports.realtime import PresenceListener, Transport
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import IdentityMismatchException
from infrastructure.realtime.locks import KeyedLock


logger = get_logger(__name__)

OVERFLOW_POLICIES = {"drop_oldest", "drop_new", "disconnect"}


@dataclass(eq=False)
class Connection:
    id: int
    transport: Transport
    queue: asyncio.Queue
    user_id: Optional[int] = None
    rooms: Set[str] = field(default_factory=set)
    sender: Optional[asyncio.Task] = None
    closing: bool = False


class ConnectionRegistry:
    """Manage per-process connections, user bindings and room memberships."""

    def __init__(
        self,
        *,
        send_queue_max: Optional[int] = None,
        overflow_policy: Optional[str] = None,
        presence_listener: Optional[PresenceListener] = None,
    ) -> None:
        self._conns: Dict[int, Connection] = {}
        # user_id -> set[connection_id]; len() is the binding refcount
        self._by_user: Dict[int, Set[int]] = {}
        # room -> set[connection_id]
        self._by_room: Dict[str, Set[int]] = {}
        self._room_locks = KeyedLock()
        self._user_locks = KeyedLock()
        self._ids = itertools.count(1)
        self._queue_max = max(1, int(send_queue_max or settings.realtime.send_queue_max))
        policy = (overflow_policy or settings.realtime.overflow_policy or "drop_oldest").lower()
        if policy not in OVERFLOW_POLICIES:
            logger.warning("ws_send_queue_policy_invalid", policy=policy, fallback="drop_oldest")
            policy = "drop_oldest"
        self._policy = policy
        self._listener = presence_listener

    def set_presence_listener(self, listener: Optional[PresenceListener]) -> None:
        self._listener = listener

    # -------------------- lifecycle --------------------
    async def admit(self, transport: Transport) -> int:
        """Register an anonymous connection and start its sender task."""
        connection_id = next(self._ids)
        conn = Connection(
            id=connection_id,
            transport=transport,
            queue=asyncio.Queue(maxsize=self._queue_max),
        )
        self._conns[connection_id] = conn
        conn.sender = asyncio.create_task(self._sender_loop(conn))
        logger.info("ws_connected", connection_id=connection_id)
        return connection_id

    async def bind(self, connection_id: int, user_id: int) -> bool:
        """
        绑定连接到用户

        Returns True when this bind took the user from zero to one bindings.
        The presence listener is notified under the user's lock; if it fails
        the bind is undone and the error propagates.
        """
        async with self._user_locks.hold(user_id):
            conn = self._conns.get(connection_id)
            if conn is None:
                return False
            if conn.user_id == user_id:
                return False
            if conn.user_id is not None:
                raise IdentityMismatchException(claimed=user_id, verified=conn.user_id)

            bindings = self._by_user.setdefault(user_id, set())
            bindings.add(connection_id)
            conn.user_id = user_id
            first = len(bindings) == 1
            if first and self._listener is not None:
                try:
                    await self._listener.user_online(user_id)
                except Exception:
                    bindings.discard(connection_id)
                    if not bindings:
                        self._by_user.pop(user_id, None)
                    conn.user_id = None
                    logger.warning("ws_bind_rolled_back", connection_id=connection_id, user_id=user_id)
                    raise
        logger.info("ws_bound", connection_id=connection_id, user_id=user_id, first=first)
        return first

    async def join(self, connection_id: int, room: str) -> bool:
        async with self._room_locks.hold(room):
            conn = self._conns.get(connection_id)
            if conn is None:
                return False
            self._by_room.setdefault(room, set()).add(connection_id)
            conn.rooms.add(room)
        logger.info("ws_join_room", room=room, connection_id=connection_id)
        return True

    async def leave(self, connection_id: int, room: str) -> None:
        async with self._room_locks.hold(room):
            self._discard_member(room, connection_id)
            conn = self._conns.get(connection_id)
            if conn is not None:
                conn.rooms.discard(room)
        logger.info("ws_leave_room", room=room, connection_id=connection_id)

    async def drop(self, connection_id: int) -> Optional[int]:
        """
        移除连接：退出所有房间、停止发送任务、释放用户绑定

        Returns the user id the connection was bound to, if any. Dropping an
        unknown connection is a no-op.
        """
        conn = self._conns.pop(connection_id, None)
        if conn is None:
            return None

        for room in list(conn.rooms):
            async with self._room_locks.hold(room):
                self._discard_member(room, connection_id)
        conn.rooms.clear()

        self._stop_sender(conn)

        user_id = conn.user_id
        if user_id is not None:
            async with self._user_locks.hold(user_id):
                bindings = self._by_user.get(user_id, set())
                # a bind rolled back while we waited: the user never went online through this connection
                if conn.user_id != user_id or connection_id not in bindings:
                    logger.info("ws_disconnected", connection_id=connection_id, user_id=None)
                    return None
                bindings.discard(connection_id)
                if not bindings:
                    self._by_user.pop(user_id, None)
                    if self._listener is not None:
                        await self._listener.user_offline(user_id)
        logger.info("ws_disconnected", connection_id=connection_id, user_id=user_id)
        return user_id

    async def close_all(self) -> None:
        for connection_id in list(self._conns):
            await self.drop(connection_id)

    # -------------------- queries --------------------
    def room_lock(self, room: str):
        """Hold a room's lock; fan-out snapshots and enqueues under it."""
        return self._room_locks.hold(room)

    def members(self, room: str) -> Set[int]:
        return set(self._by_room.get(room, ()))

    def rooms_of(self, connection_id: int) -> Set[str]:
        conn = self._conns.get(connection_id)
        return set(conn.rooms) if conn else set()

    def connections_of(self, user_id: int) -> Set[int]:
        return set(self._by_user.get(user_id, ()))

    def user_of(self, connection_id: int) -> Optional[int]:
        conn = self._conns.get(connection_id)
        return conn.user_id if conn else None

    def is_bound(self, user_id: int) -> bool:
        return bool(self._by_user.get(user_id))

    def room_names(self) -> List[str]:
        return sorted(self._by_room)

    def connection_ids(self) -> List[int]:
        return list(self._conns)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._conns

    def __len__(self) -> int:
        return len(self._conns)

    # -------------------- delivery --------------------
    async def enqueue(self, connection_id: int, payload: Any) -> bool:
        """Put a payload on the connection's FIFO queue, applying the overflow policy."""
        conn = self._conns.get(connection_id)
        if conn is None or conn.closing:
            return False
        q = conn.queue
        try:
            q.put_nowait(payload)
            return True
        except asyncio.QueueFull:
            pass

        context = {"connection_id": connection_id, "user_id": conn.user_id}
        if self._policy == "drop_new":
            logger.warning("ws_send_queue_drop_new", **context)
            return False
        if self._policy == "disconnect":
            logger.warning("ws_send_queue_disconnect", **context)
            conn.closing = True
            try:
                await conn.transport.close(code=1013)
            except Exception as exc:
                logger.warning("ws_close_failed", error=str(exc), **context)
            return False
        # default: drop_oldest
        q.get_nowait()
        q.task_done()
        q.put_nowait(payload)
        logger.warning("ws_send_queue_drop_oldest", **context)
        return True

    async def drain(self) -> None:
        """Wait until every payload queued so far has been handed to its transport."""
        queues = [c.queue for c in self._conns.values()]
        if queues:
            await asyncio.gather(*(q.join() for q in queues))

    def _discard_member(self, room: str, connection_id: int) -> None:
        members = self._by_room.get(room)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._by_room[room]

    def _stop_sender(self, conn: Connection) -> None:
        if conn.sender is not None:
            conn.sender.cancel()
        # release drain() waiters for payloads that will never be sent
        while True:
            try:
                conn.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            conn.queue.task_done()

    async def _sender_loop(self, conn: Connection) -> None:
        q = conn.queue
        try:
            while True:
                payload = await q.get()
                try:
                    await conn.transport.send_json(payload)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:  # pragma: no cover
                    logger.warning("ws_send_failed", connection_id=conn.id, error=str(exc))
                finally:
                    q.task_done()
        except asyncio.CancelledError:  # graceful exit
            return


__all__ = ["Connection", "ConnectionRegistry", "OVERFLOW_POLICIES"]
