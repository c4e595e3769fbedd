import asyncio

import pytest

from domain.common.exceptions import IdentityMismatchException
from infrastructure.realtime.connection_manager import ConnectionRegistry


pytestmark = pytest.mark.asyncio


class RecordingListener:
    def __init__(self, fail_online: bool = False):
        self.events = []
        self.fail_online = fail_online

    async def user_online(self, user_id: int) -> None:
        if self.fail_online:
            raise RuntimeError("database unavailable")
        self.events.append(("online", user_id))

    async def user_offline(self, user_id: int) -> None:
        self.events.append(("offline", user_id))


class BlockingTransport:
    """send_json blocks until released, so the outbound queue can fill up."""

    def __init__(self):
        self.sent = []
        self.release = asyncio.Event()
        self.closed_with = None

    async def send_json(self, data):
        await self.release.wait()
        self.sent.append(data)

    async def close(self, code: int = 1000):
        self.closed_with = code


async def _let_sender_pick_up():
    for _ in range(3):
        await asyncio.sleep(0)


async def test_membership_follows_latest_join_or_leave(make_transport):
    registry = ConnectionRegistry()
    cid = await registry.admit(make_transport())

    await registry.join(cid, "global-chat")
    await registry.join(cid, "global-chat")
    assert registry.members("global-chat") == {cid}

    await registry.leave(cid, "global-chat")
    assert cid not in registry.members("global-chat")
    # empty rooms are garbage-collected
    assert registry.room_names() == []

    await registry.join(cid, "global-chat")
    assert registry.rooms_of(cid) == {"global-chat"}
    await registry.close_all()


async def test_drop_removes_connection_from_every_room(make_transport):
    registry = ConnectionRegistry()
    a = await registry.admit(make_transport("a"))
    b = await registry.admit(make_transport("b"))
    for room in ("global-chat", "crypto-updates"):
        await registry.join(a, room)
        await registry.join(b, room)

    await registry.drop(a)

    assert registry.members("global-chat") == {b}
    assert registry.members("crypto-updates") == {b}
    assert a not in registry
    assert await registry.drop(a) is None
    await registry.close_all()


async def test_join_after_drop_is_ignored(make_transport):
    registry = ConnectionRegistry()
    cid = await registry.admit(make_transport())
    await registry.drop(cid)

    assert await registry.join(cid, "global-chat") is False
    assert registry.members("global-chat") == set()


async def test_bindings_are_refcounted_per_user(make_transport):
    listener = RecordingListener()
    registry = ConnectionRegistry(presence_listener=listener)
    phone = await registry.admit(make_transport("phone"))
    laptop = await registry.admit(make_transport("laptop"))

    assert await registry.bind(phone, 7) is True
    assert await registry.bind(laptop, 7) is False
    assert await registry.bind(laptop, 7) is False
    assert registry.connections_of(7) == {phone, laptop}
    assert listener.events == [("online", 7)]

    await registry.drop(phone)
    assert registry.is_bound(7)
    assert listener.events == [("online", 7)]

    await registry.drop(laptop)
    assert not registry.is_bound(7)
    assert listener.events == [("online", 7), ("offline", 7)]


async def test_anonymous_drop_never_reaches_presence(make_transport):
    listener = RecordingListener()
    registry = ConnectionRegistry(presence_listener=listener)
    cid = await registry.admit(make_transport())
    await registry.join(cid, "global-chat")

    await registry.drop(cid)

    assert listener.events == []


async def test_failed_online_notification_undoes_bind(make_transport):
    registry = ConnectionRegistry(presence_listener=RecordingListener(fail_online=True))
    cid = await registry.admit(make_transport())

    with pytest.raises(RuntimeError):
        await registry.bind(cid, 3)

    assert registry.user_of(cid) is None
    assert not registry.is_bound(3)
    await registry.close_all()


class GatedFailingListener:
    """user_online parks until released, then fails like a storage outage."""

    def __init__(self):
        self.events = []
        self.release = asyncio.Event()

    async def user_online(self, user_id: int) -> None:
        self.events.append(("online", user_id))
        await self.release.wait()
        raise RuntimeError("db down")

    async def user_offline(self, user_id: int) -> None:
        self.events.append(("offline", user_id))


async def test_drop_during_failed_bind_skips_offline_transition(make_transport):
    listener = GatedFailingListener()
    registry = ConnectionRegistry(presence_listener=listener)
    cid = await registry.admit(make_transport())

    binding = asyncio.create_task(registry.bind(cid, 7))
    await _let_sender_pick_up()
    dropping = asyncio.create_task(registry.drop(cid))
    await _let_sender_pick_up()
    listener.release.set()
    bind_result, drop_result = await asyncio.gather(binding, dropping, return_exceptions=True)

    assert isinstance(bind_result, RuntimeError)
    assert drop_result is None
    assert listener.events == [("online", 7)]
    assert not registry.is_bound(7)


async def test_rebinding_to_another_user_is_rejected(make_transport):
    registry = ConnectionRegistry()
    cid = await registry.admit(make_transport())
    await registry.bind(cid, 1)

    with pytest.raises(IdentityMismatchException):
        await registry.bind(cid, 2)
    assert registry.user_of(cid) == 1
    await registry.close_all()


async def test_payloads_are_delivered_in_fifo_order(make_transport):
    registry = ConnectionRegistry()
    transport = make_transport()
    cid = await registry.admit(transport)

    for i in range(10):
        await registry.enqueue(cid, {"seq": i})
    await registry.drain()

    assert [m["seq"] for m in transport.sent] == list(range(10))
    await registry.close_all()


async def test_overflow_drop_oldest_keeps_newest():
    registry = ConnectionRegistry(send_queue_max=2, overflow_policy="drop_oldest")
    transport = BlockingTransport()
    cid = await registry.admit(transport)

    await registry.enqueue(cid, {"seq": 1})
    await _let_sender_pick_up()
    for seq in (2, 3, 4):
        await registry.enqueue(cid, {"seq": seq})

    transport.release.set()
    await registry.drain()
    assert [m["seq"] for m in transport.sent] == [1, 3, 4]
    await registry.close_all()


async def test_overflow_drop_new_rejects_payload():
    registry = ConnectionRegistry(send_queue_max=2, overflow_policy="drop_new")
    transport = BlockingTransport()
    cid = await registry.admit(transport)

    await registry.enqueue(cid, {"seq": 1})
    await _let_sender_pick_up()
    assert await registry.enqueue(cid, {"seq": 2}) is True
    assert await registry.enqueue(cid, {"seq": 3}) is True
    assert await registry.enqueue(cid, {"seq": 4}) is False

    transport.release.set()
    await registry.drain()
    assert [m["seq"] for m in transport.sent] == [1, 2, 3]
    await registry.close_all()


async def test_overflow_disconnect_closes_transport():
    registry = ConnectionRegistry(send_queue_max=1, overflow_policy="disconnect")
    transport = BlockingTransport()
    cid = await registry.admit(transport)

    await registry.enqueue(cid, {"seq": 1})
    await _let_sender_pick_up()
    await registry.enqueue(cid, {"seq": 2})
    assert await registry.enqueue(cid, {"seq": 3}) is False

    assert transport.closed_with == 1013
    # further payloads are refused until the connection is dropped
    assert await registry.enqueue(cid, {"seq": 4}) is False
    transport.release.set()
    await registry.drop(cid)


async def test_drop_releases_pending_drain():
    registry = ConnectionRegistry(send_queue_max=10)
    transport = BlockingTransport()
    cid = await registry.admit(transport)
    for seq in range(3):
        await registry.enqueue(cid, {"seq": seq})
    await _let_sender_pick_up()

    waiter = asyncio.create_task(registry.drain())
    await _let_sender_pick_up()
    assert not waiter.done()

    await registry.drop(cid)
    await asyncio.wait_for(waiter, timeout=1)
