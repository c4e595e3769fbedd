import pytest

from application.dto import AttachmentDTO, AudioClipDTO
from domain.common.exceptions import (
    DomainValidationException,
    MessageNotFoundException,
    MessagePermissionException,
    UserNotFoundException,
)


pytestmark = pytest.mark.asyncio


async def test_direct_message_reaches_recipient_room(hub, create_users, make_transport):
    alice, bob = await create_users("alice", "bob")
    alice_conn = make_transport("alice")
    bob_conn = make_transport("bob")
    await hub.connect(alice_conn, alice)
    await hub.connect(bob_conn, bob)

    sent = await hub.messaging.send_direct(alice.id, bob.id, text="hello")
    await hub.settle()

    delivered = bob_conn.of_type("message")
    assert len(delivered) == 1
    assert delivered[0]["room"] == f"user-{bob.id}"
    assert delivered[0]["sender_id"] == alice.id
    assert delivered[0]["data"]["id"] == sent.id
    assert delivered[0]["data"]["text"] == "hello"
    assert alice_conn.of_type("message") == []


async def test_offline_recipient_accumulates_unread(hub, create_users, make_transport):
    alice, bob = await create_users("alice", "bob")
    await hub.connect(make_transport("alice"), alice)

    await hub.messaging.send_direct(alice.id, bob.id, text="first")
    await hub.messaging.send_direct(alice.id, bob.id, text="second")

    assert await hub.messaging.unread_count(bob.id) == 2
    history = await hub.messaging.list_conversation(bob.id, alice.id)
    assert [m.text for m in history] == ["first", "second"]


async def test_failed_write_publishes_nothing(hub, create_users, make_transport):
    (alice,) = await create_users("alice")
    ghost_room_listener = make_transport("listener")
    cid = await hub.service.open(ghost_room_listener)
    await hub.registry.join(cid, "user-999")

    with pytest.raises(UserNotFoundException):
        await hub.messaging.send_direct(alice.id, 999, text="anyone there?")
    await hub.settle()

    assert ghost_room_listener.of_type("message") == []


async def test_message_requires_text_or_attachment(hub, create_users):
    alice, bob = await create_users("alice", "bob")

    with pytest.raises(DomainValidationException):
        await hub.messaging.send_direct(alice.id, bob.id, text="   ")
    with pytest.raises(DomainValidationException):
        await hub.messaging.send_direct(alice.id, alice.id, text="me")

    sent = await hub.messaging.send_direct(
        alice.id, bob.id, attachment=AttachmentDTO(type="image", url="https://cdn.example/p.png")
    )
    assert sent.text is None
    assert sent.attachment.url == "https://cdn.example/p.png"


async def test_only_recipient_marks_read(hub, create_users):
    alice, bob = await create_users("alice", "bob")
    sent = await hub.messaging.send_direct(alice.id, bob.id, text="hey")

    with pytest.raises(MessagePermissionException):
        await hub.messaging.mark_read(sent.id, alice.id)
    with pytest.raises(MessageNotFoundException):
        await hub.messaging.mark_read(sent.id + 100, bob.id)

    read = await hub.messaging.mark_read(sent.id, bob.id)
    assert read.is_read is True
    assert await hub.messaging.unread_count(bob.id) == 0


async def test_mark_all_read_and_contacts(hub, create_users):
    alice, bob, carol = await create_users("alice", "bob", "carol")
    await hub.messaging.send_direct(alice.id, bob.id, text="a1")
    await hub.messaging.send_direct(alice.id, bob.id, text="a2")
    await hub.messaging.send_direct(carol.id, bob.id, text="c1")

    contacts = await hub.messaging.list_contacts(bob.id)
    assert [c.peer_id for c in contacts] == [carol.id, alice.id]
    assert {c.peer_id: c.unread_count for c in contacts} == {carol.id: 1, alice.id: 2}
    assert contacts[1].last_message.text == "a2"

    assert await hub.messaging.mark_all_read(bob.id, alice.id) == 2
    assert await hub.messaging.unread_count(bob.id) == 1


async def test_only_sender_deletes_direct_message(hub, create_users):
    alice, bob = await create_users("alice", "bob")
    sent = await hub.messaging.send_direct(alice.id, bob.id, text="oops")

    with pytest.raises(MessagePermissionException):
        await hub.messaging.delete_direct(sent.id, bob.id)
    await hub.messaging.delete_direct(sent.id, alice.id)

    assert await hub.messaging.list_conversation(alice.id, bob.id) == []


async def test_clear_conversation_removes_only_own_messages(hub, create_users):
    alice, bob = await create_users("alice", "bob")
    from_alice = await hub.messaging.send_direct(alice.id, bob.id, text="x")
    from_bob = await hub.messaging.send_direct(bob.id, alice.id, text="y")

    assert await hub.messaging.clear_conversation(bob.id, alice.id) == 1

    assert [m.id for m in await hub.messaging.list_conversation(alice.id, bob.id)] == [from_alice.id]
    assert from_bob.id not in [m.id for m in await hub.messaging.list_conversation(bob.id, alice.id)]

    assert await hub.messaging.clear_conversation(alice.id, bob.id) == 1
    assert await hub.messaging.list_contacts(alice.id) == []


async def test_group_message_history_and_seen(hub, create_users, make_transport):
    alice, bob = await create_users("alice", "bob")
    bob_conn = make_transport("bob")
    await hub.connect(bob_conn, bob)

    first = await hub.messaging.send_group(alice.id, text="one")
    second = await hub.messaging.send_group(alice.id, audio=AudioClipDTO(url="https://cdn.example/a.webm", duration=3.5))
    await hub.settle()

    assert [m["data"]["id"] for m in bob_conn.of_type("newGroupMessage")] == [first.id, second.id]
    assert first.seen_by == [alice.id]

    assert await hub.messaging.mark_seen([first.id, second.id, 12345], bob.id) == 2
    assert await hub.messaging.mark_seen([first.id], bob.id) == 0

    history = await hub.messaging.list_group_history(limit=10)
    assert [m.id for m in history] == [first.id, second.id]
    assert history[0].seen_by == sorted([alice.id, bob.id])
    assert history[1].audio.duration == 3.5


async def test_group_history_returns_most_recent_oldest_first(hub, create_users):
    (alice,) = await create_users("alice")
    for i in range(5):
        await hub.messaging.send_group(alice.id, text=f"m{i}")

    history = await hub.messaging.list_group_history(limit=3)

    assert [m.text for m in history] == ["m2", "m3", "m4"]


async def test_only_sender_deletes_group_message(hub, create_users):
    alice, bob = await create_users("alice", "bob")
    sent = await hub.messaging.send_group(alice.id, text="bye")

    with pytest.raises(MessagePermissionException):
        await hub.messaging.delete_group(sent.id, bob.id)
    await hub.messaging.delete_group(sent.id, alice.id)

    assert await hub.messaging.list_group_history() == []
