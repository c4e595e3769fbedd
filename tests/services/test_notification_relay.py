import pytest

from domain.common.exceptions import (
    DomainValidationException,
    MessagePermissionException,
    NotificationNotFoundException,
    UserNotFoundException,
)


pytestmark = pytest.mark.asyncio


async def test_notify_persists_then_pushes(hub, create_users, make_transport):
    alice, bob = await create_users("alice", "bob")
    bob_conn = make_transport("bob")
    await hub.connect(bob_conn, bob)

    created = await hub.notifications.notify(bob.id, "like", {"post_id": 12}, sender_id=alice.id)
    await hub.settle()

    pushed = bob_conn.of_type("notification")
    assert len(pushed) == 1
    assert pushed[0]["room"] == f"user-{bob.id}"
    assert pushed[0]["data"]["id"] == created.id
    assert pushed[0]["data"]["payload"] == {"post_id": 12}
    assert [n.id for n in await hub.notifications.list_for(bob.id)] == [created.id]


async def test_notify_unknown_recipient_pushes_nothing(hub, make_transport):
    listener = make_transport()
    cid = await hub.service.open(listener)
    await hub.registry.join(cid, "user-77")

    with pytest.raises(UserNotFoundException):
        await hub.notifications.notify(77, "follow")
    with pytest.raises(DomainValidationException):
        await hub.notifications.notify(77, "  ")
    await hub.settle()

    assert listener.of_type("notification") == []


async def test_read_and_delete_are_recipient_only(hub, create_users):
    alice, bob = await create_users("alice", "bob")
    first = await hub.notifications.notify(bob.id, "comment", sender_id=alice.id)
    await hub.notifications.notify(bob.id, "badge")
    assert await hub.notifications.unread_count(bob.id) == 2

    with pytest.raises(MessagePermissionException):
        await hub.notifications.mark_read(first.id, alice.id)
    with pytest.raises(NotificationNotFoundException):
        await hub.notifications.mark_read(first.id + 100, bob.id)

    assert (await hub.notifications.mark_read(first.id, bob.id)).is_read is True
    assert await hub.notifications.unread_count(bob.id) == 1
    assert await hub.notifications.mark_all_read(bob.id) == 1

    with pytest.raises(MessagePermissionException):
        await hub.notifications.delete(first.id, alice.id)
    await hub.notifications.delete(first.id, bob.id)
    assert await hub.notifications.delete_all(bob.id) == 1
    assert await hub.notifications.list_for(bob.id) == []
