import asyncio

import pytest

from infrastructure.realtime.brokers import InMemoryRealtimeBroker
from infrastructure.realtime.connection_manager import ConnectionRegistry
from infrastructure.realtime.locks import KeyedLock
from infrastructure.realtime.room_bus import RoomBus


pytestmark = pytest.mark.asyncio


@pytest.fixture
async def bus():
    registry = ConnectionRegistry()
    room_bus = RoomBus(broker=InMemoryRealtimeBroker(), registry=registry)
    await room_bus.start()
    yield room_bus
    await registry.close_all()
    await room_bus.aclose()


async def test_publish_reaches_each_member_exactly_once(bus, make_transport):
    transports = [make_transport(f"c{i}") for i in range(5)]
    for t in transports:
        cid = await bus.registry.admit(t)
        await bus.registry.join(cid, "global-chat")
    outsider = make_transport("outsider")
    await bus.registry.admit(outsider)

    await bus.publish("global-chat", "newGroupMessage", {"text": "gm"})
    await bus.registry.drain()

    for t in transports:
        assert len(t.of_type("newGroupMessage")) == 1
        assert t.of_type("newGroupMessage")[0]["room"] == "global-chat"
    assert outsider.sent == []


async def test_publish_preserves_order_within_a_room(bus, make_transport):
    transport = make_transport()
    cid = await bus.registry.admit(transport)
    await bus.registry.join(cid, "crypto-updates")

    await asyncio.gather(*(bus.publish("crypto-updates", "cryptoUpdate", {"seq": i}) for i in range(20)))
    await bus.registry.drain()

    assert [m["data"]["seq"] for m in transport.of_type("cryptoUpdate")] == list(range(20))


async def test_publish_to_empty_room_is_a_noop(bus):
    envelope = await bus.publish("solana-updates", "solanaUpdate", [])
    assert envelope.room == "solana-updates"
    assert bus.registry.room_names() == []


async def test_excluded_user_connections_are_skipped(bus, make_transport):
    mine = [make_transport("phone"), make_transport("laptop")]
    other = make_transport("other")
    for t in mine:
        cid = await bus.registry.admit(t)
        await bus.registry.bind(cid, 1)
        await bus.registry.join(cid, "global-chat")
    other_id = await bus.registry.admit(other)
    await bus.registry.join(other_id, "global-chat")

    await bus.publish("global-chat", "typingIndicator", {"user_id": 1}, exclude_user_id=1)
    await bus.registry.drain()

    assert all(t.of_type("typingIndicator") == [] for t in mine)
    assert len(other.of_type("typingIndicator")) == 1
    assert "exclude_user_id" not in other.sent[0]


async def test_late_joiner_only_gets_retained_tick(bus, make_transport):
    await bus.publish("fear-greed-updates", "fearGreedUpdate", {"value": 40}, retain=True)
    await bus.publish("global-chat", "newGroupMessage", {"text": "missed"})

    transport = make_transport()
    cid = await bus.registry.admit(transport)
    await bus.registry.join(cid, "fear-greed-updates")
    await bus.registry.join(cid, "global-chat")
    assert await bus.replay_retained(cid, "fear-greed-updates") is True
    assert await bus.replay_retained(cid, "global-chat") is False
    await bus.registry.drain()

    assert transport.types() == ["fearGreedUpdate"]
    assert transport.sent[0]["data"] == {"value": 40}


async def test_broadcast_reaches_anonymous_connections(bus, make_transport):
    anon = make_transport("anon")
    await bus.registry.admit(anon)

    delivered = await bus.broadcast("presenceChanged", {"user_id": 5, "is_online": True})
    await bus.registry.drain()

    assert delivered == 1
    assert anon.of_type("presenceChanged")[0]["data"]["user_id"] == 5


async def test_keyed_lock_does_not_block_independent_keys():
    locks = KeyedLock()
    entered = asyncio.Event()

    async with locks.hold("room-a"):
        async def other_room():
            async with locks.hold("room-b"):
                entered.set()

        await asyncio.wait_for(other_room(), timeout=1)
        assert entered.is_set()

    assert len(locks) == 0


async def test_keyed_lock_serializes_same_key():
    locks = KeyedLock()
    order = []

    async def worker(tag: str):
        async with locks.hold("room"):
            order.append(f"{tag}-in")
            await asyncio.sleep(0)
            order.append(f"{tag}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]
