import pytest

from core.exceptions import UnauthorizedException
from domain.common.exceptions import (
    DomainValidationException,
    IdentityMismatchException,
    RoomAccessDeniedException,
    TopicNotFoundException,
)


pytestmark = pytest.mark.asyncio


async def test_open_greets_anonymous_connection(hub, make_transport):
    transport = make_transport()
    cid = await hub.service.open(transport)
    await hub.settle()

    assert transport.types() == ["welcome"]
    assert transport.sent[0]["data"]["connection_id"] == cid
    assert hub.registry.user_of(cid) is None


async def test_authenticate_requires_verified_identity(hub, create_users, make_transport):
    (alice,) = await create_users("alice")
    cid = await hub.service.open(make_transport())

    with pytest.raises(UnauthorizedException):
        await hub.service.authenticate(cid, claimed_user_id=alice.id)
    with pytest.raises(UnauthorizedException):
        await hub.service.authenticate(cid, token="not-a-jwt")
    assert hub.registry.user_of(cid) is None


async def test_authenticate_with_token_in_signal(hub, create_users, make_transport):
    (alice,) = await create_users("alice")
    transport = make_transport()
    cid = await hub.service.open(transport)

    user_id = await hub.service.authenticate(cid, token=hub.tokens.create_access_token(alice))
    await hub.settle()

    assert user_id == alice.id
    assert hub.registry.rooms_of(cid) == {f"user-{alice.id}", "global-chat"}
    authenticated = transport.of_type("authenticated")[0]
    assert authenticated["data"]["user_id"] == alice.id


async def test_claimed_identity_must_match_verified(hub, create_users, make_transport):
    alice, bob = await create_users("alice", "bob")
    cid = await hub.service.open(make_transport(), verified_user_id=alice.id)

    with pytest.raises(IdentityMismatchException):
        await hub.service.authenticate(cid, claimed_user_id=bob.id)
    with pytest.raises(IdentityMismatchException):
        await hub.service.authenticate(cid, token=hub.tokens.create_access_token(bob))
    assert not hub.presence.is_online(alice.id)

    await hub.service.authenticate(cid, claimed_user_id=str(alice.id))
    assert hub.registry.user_of(cid) == alice.id


async def test_topic_subscription_rules(hub, create_users, make_transport):
    alice, bob = await create_users("alice", "bob")
    anon = make_transport("anon")
    anon_id = await hub.connect(anon)
    alice_id = await hub.connect(make_transport("alice"), alice)

    await hub.service.subscribe_to_topic(anon_id, "crypto-updates")
    assert anon_id in hub.registry.members("crypto-updates")

    with pytest.raises(TopicNotFoundException):
        await hub.service.subscribe_to_topic(anon_id, "weather")
    with pytest.raises(TopicNotFoundException):
        await hub.service.subscribe_to_topic(anon_id, f"user-{alice.id}")
    with pytest.raises(RoomAccessDeniedException):
        await hub.service.subscribe_to_topic(anon_id, f"quests-{alice.id}")
    with pytest.raises(RoomAccessDeniedException):
        await hub.service.subscribe_to_topic(alice_id, f"quests-{bob.id}")

    await hub.service.subscribe_to_topic(alice_id, f"quests-{alice.id}")
    assert f"quests-{alice.id}" in hub.registry.rooms_of(alice_id)

    await hub.service.unsubscribe_from_topic(anon_id, "crypto-updates")
    await hub.settle()
    assert anon_id not in hub.registry.members("crypto-updates")
    assert anon.types()[-2:] == ["subscribed", "unsubscribed"]


async def test_subscribe_replays_latest_tick(hub, make_transport):
    await hub.bus.publish("fear-greed-updates", "fearGreedUpdate", {"value": 71}, retain=True)
    transport = make_transport()
    cid = await hub.connect(transport)

    await hub.service.subscribe_to_topic(cid, "fear-greed-updates")
    await hub.settle()

    assert transport.types() == ["welcome", "subscribed", "fearGreedUpdate"]
    assert transport.sent[-1]["data"]["value"] == 71


async def test_typing_requires_authentication(hub, make_transport):
    cid = await hub.connect(make_transport())

    with pytest.raises(UnauthorizedException):
        await hub.service.typing(cid, "global-chat", True)


async def test_typing_to_user_and_auto_clear_on_drop(hub, create_users, make_transport):
    alice, bob = await create_users("alice", "bob")
    bob_conn = make_transport("bob")
    alice_id = await hub.connect(make_transport("alice"), alice)
    await hub.connect(bob_conn, bob)

    await hub.service.typing(alice_id, bob.id, True)
    await hub.service.close(alice_id)
    await hub.settle()

    signals = [m["data"] for m in bob_conn.of_type("typingIndicator")]
    assert signals == [
        {"user_id": alice.id, "target": str(bob.id), "is_typing": True},
        {"user_id": alice.id, "target": str(bob.id), "is_typing": False},
    ]
    assert hub.typing.active_targets(alice_id) == {}


async def test_group_typing_skips_all_sender_connections(hub, create_users, make_transport):
    alice, bob = await create_users("alice", "bob")
    phone = make_transport("phone")
    laptop = make_transport("laptop")
    bob_conn = make_transport("bob")
    phone_id = await hub.connect(phone, alice)
    await hub.connect(laptop, alice)
    await hub.connect(bob_conn, bob)

    await hub.service.typing(phone_id, "global-chat", True)
    await hub.service.typing(phone_id, "global-chat", False)
    await hub.settle()

    assert phone.of_type("typingIndicator") == []
    assert laptop.of_type("typingIndicator") == []
    assert [m["data"]["is_typing"] for m in bob_conn.of_type("typingIndicator")] == [True, False]
    # stopping explicitly leaves nothing to clear on drop
    assert await hub.typing.clear_connection(phone_id, alice.id) == 0


async def test_typing_to_self_is_rejected(hub, create_users, make_transport):
    (alice,) = await create_users("alice")
    cid = await hub.connect(make_transport(), alice)

    with pytest.raises(DomainValidationException):
        await hub.service.typing(cid, alice.id, True)
    with pytest.raises(DomainValidationException):
        await hub.service.typing(cid, "somewhere", True)
