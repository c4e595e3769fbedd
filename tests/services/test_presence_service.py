import pytest

from sqlalchemy.exc import OperationalError

from domain.common.exceptions import UserNotFoundException


pytestmark = pytest.mark.asyncio


async def test_second_device_does_not_repeat_online_event(hub, create_users, make_transport):
    (alice,) = await create_users("alice")
    watcher = make_transport("watcher")
    await hub.connect(watcher)

    phone = make_transport("phone")
    laptop = make_transport("laptop")
    phone_id = await hub.connect(phone, alice)
    laptop_id = await hub.connect(laptop, alice)
    await hub.settle()

    online = [m for m in watcher.of_type("presenceChanged") if m["data"]["is_online"]]
    assert len(online) == 1
    assert online[0]["data"]["user_id"] == alice.id
    assert hub.presence.online_user_ids() == [alice.id]

    await hub.service.close(phone_id)
    await hub.settle()
    assert hub.presence.is_online(alice.id)
    assert [m for m in watcher.of_type("presenceChanged") if not m["data"]["is_online"]] == []

    await hub.service.close(laptop_id)
    await hub.settle()
    offline = [m for m in watcher.of_type("presenceChanged") if not m["data"]["is_online"]]
    assert len(offline) == 1
    assert hub.presence.online_user_ids() == []


async def test_presence_is_persisted(hub, create_users, make_transport, uow_factory):
    (alice,) = await create_users("alice")
    cid = await hub.connect(make_transport(), alice)

    async with uow_factory(readonly=True) as uow:
        stored = await uow.user_repository.get_by_id(alice.id)
    assert stored.is_online is True
    assert stored.presence.last_active is not None

    await hub.service.close(cid)
    async with uow_factory(readonly=True) as uow:
        stored = await uow.user_repository.get_by_id(alice.id)
    assert stored.is_online is False


async def test_get_falls_back_to_durable_record(hub, create_users):
    (bob,) = await create_users("bob")

    presence = await hub.presence.get(bob.id)

    assert presence.user_id == bob.id
    assert presence.is_online is False


async def test_get_unknown_user_raises(hub):
    with pytest.raises(UserNotFoundException):
        await hub.presence.get(404)


async def test_authenticating_unknown_user_is_rejected(hub, make_transport):
    transport = make_transport()
    cid = await hub.service.open(transport, verified_user_id=999)

    with pytest.raises(UserNotFoundException):
        await hub.service.authenticate(cid)

    assert hub.registry.user_of(cid) is None
    assert not hub.presence.is_online(999)
    await hub.settle()
    assert transport.of_type("presenceChanged") == []


async def test_anonymous_reader_never_appears_in_presence(hub, create_users, make_transport):
    (alice,) = await create_users("alice")
    anon = make_transport("anon")
    anon_id = await hub.connect(anon)
    await hub.service.subscribe_to_topic(anon_id, "global-chat")
    await hub.connect(make_transport("alice"), alice)

    await hub.messaging.send_group(alice.id, text="gm everyone")
    await hub.settle()

    group = anon.of_type("newGroupMessage")
    assert len(group) == 1
    assert group[0]["data"]["text"] == "gm everyone"
    assert hub.presence.online_user_ids() == [alice.id]
    assert hub.registry.user_of(anon_id) is None


class SwitchableUnitOfWork:
    """Wraps the real factory; once broken, every unit of work fails to open."""

    def __init__(self, factory):
        self._factory = factory
        self.broken = False

    def __call__(self, **kwargs):
        if self.broken:
            raise OperationalError("UPDATE users", {}, Exception("database is gone"))
        return self._factory(**kwargs)


async def test_offline_persist_failure_keeps_live_view_offline(make_hub, create_users, make_transport, uow_factory):
    (alice,) = await create_users("alice")
    storage = SwitchableUnitOfWork(uow_factory)
    h = await make_hub(storage)
    watcher = make_transport("watcher")
    await h.connect(watcher)
    alice_id = await h.connect(make_transport("alice"), alice)
    await h.settle()

    storage.broken = True
    with pytest.raises(OperationalError):
        await h.service.close(alice_id)
    await h.settle()
    storage.broken = False

    assert not h.presence.is_online(alice.id)
    assert not h.registry.is_bound(alice.id)
    assert [m for m in watcher.of_type("presenceChanged") if not m["data"]["is_online"]] == []
    async with uow_factory(readonly=True) as uow:
        stored = await uow.user_repository.get_by_id(alice.id)
    assert stored.is_online is True
