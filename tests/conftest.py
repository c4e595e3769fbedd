"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("MARKET_DATA__ENABLED", "false")
os.environ.setdefault("NOTIFICATION_PRODUCER_KEY", "test-producer-key")

from typing import Any, List, Optional  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402

from domain.user.entity import User  # noqa: E402
from infrastructure.database import build_engine, create_tables, drop_tables  # noqa: E402
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork  # noqa: E402
from infrastructure.realtime.brokers import InMemoryRealtimeBroker  # noqa: E402
from infrastructure.realtime.connection_manager import ConnectionRegistry  # noqa: E402
from infrastructure.realtime.room_bus import RoomBus  # noqa: E402
from application.services.messaging_service import MessagingService  # noqa: E402
from application.services.notification_service import NotificationRelay  # noqa: E402
from application.services.presence_service import PresenceService  # noqa: E402
from application.services.realtime_service import HubService  # noqa: E402
from application.services.token_service import TokenService  # noqa: E402
from application.services.typing_service import TypingRelay  # noqa: E402


class FakeTransport:
    """Records everything the registry's sender task writes."""

    def __init__(self, name: str = "conn") -> None:
        self.name = name
        self.sent: List[dict] = []
        self.closed_with: Optional[int] = None

    async def send_json(self, data: Any) -> None:
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    def of_type(self, event: str) -> List[dict]:
        return [m for m in self.sent if m.get("type") == event]

    def types(self) -> List[str]:
        return [m.get("type") for m in self.sent]


@pytest.fixture
def make_transport():
    def _make(name: str = "conn") -> FakeTransport:
        return FakeTransport(name)
    return _make


@pytest.fixture
async def engine():
    eng = build_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(bind=eng)
    yield eng
    await drop_tables(bind=eng)
    await eng.dispose()


@pytest.fixture
def uow_factory(engine):
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    def _factory(**kwargs) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, **kwargs)
    return _factory


@pytest.fixture
def create_users(uow_factory):
    async def _create(*usernames: str) -> List[User]:
        created = []
        async with uow_factory() as uow:
            for name in usernames:
                created.append(await uow.user_repository.create(User(id=None, username=name)))
        return created
    return _create


class Hub:
    """Everything the app lifespan wires together, for service-level tests."""

    def __init__(self, uow_factory) -> None:
        self.broker = InMemoryRealtimeBroker()
        self.registry = ConnectionRegistry(send_queue_max=100, overflow_policy="drop_oldest")
        self.bus = RoomBus(broker=self.broker, registry=self.registry)
        self.presence = PresenceService(uow_factory=uow_factory, bus=self.bus)
        self.registry.set_presence_listener(self.presence)
        self.typing = TypingRelay(bus=self.bus)
        self.tokens = TokenService()
        self.messaging = MessagingService(uow_factory=uow_factory, bus=self.bus)
        self.notifications = NotificationRelay(uow_factory=uow_factory, bus=self.bus)
        self.service = HubService(
            registry=self.registry,
            bus=self.bus,
            presence=self.presence,
            typing=self.typing,
            token_service=self.tokens,
        )

    async def connect(self, transport: FakeTransport, user: Optional[User] = None) -> int:
        """Open a connection; authenticate it with a handshake identity when a user is given."""
        connection_id = await self.service.open(transport, verified_user_id=user.id if user else None)
        if user is not None:
            await self.service.authenticate(connection_id, claimed_user_id=user.id)
        return connection_id

    async def settle(self) -> None:
        await self.registry.drain()


@pytest.fixture
async def hub(uow_factory):
    h = Hub(uow_factory)
    await h.bus.start()
    yield h
    await h.registry.close_all()
    await h.bus.aclose()


@pytest.fixture
async def make_hub():
    """Build a hub around a custom unit-of-work factory (e.g. one that can fail)."""
    hubs: List[Hub] = []

    async def _make(factory) -> Hub:
        h = Hub(factory)
        await h.bus.start()
        hubs.append(h)
        return h
    yield _make
    for h in hubs:
        await h.registry.close_all()
        await h.bus.aclose()
