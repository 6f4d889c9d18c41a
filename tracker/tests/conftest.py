"""Async test fixtures for tracker tests using SQLite."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.config import TrackerSettings
from tracker.database import TransactionGateway, build_session_factory, create_engine
from tracker.models.base import Base
from tracker.services import tag_svc
from tracker.services.notification_hub import NotificationHub
from tracker.services.notification_svc import NotificationDispatcher
from tracker.services.task_svc import TaskService


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def test_settings() -> TrackerSettings:
    return TrackerSettings(
        database_url="sqlite+aiosqlite:///:memory:",
        transaction_timeout_seconds=5.0,
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def engine(test_settings: TrackerSettings):
    eng = create_engine(test_settings)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = build_session_factory(engine)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def gateway(engine, test_settings: TrackerSettings) -> TransactionGateway:
    return TransactionGateway(
        build_session_factory(engine), timeout=test_settings.transaction_timeout_seconds
    )


@pytest.fixture
def hub() -> NotificationHub:
    return NotificationHub(queue_maxsize=10)


@pytest_asyncio.fixture
async def dispatcher(gateway, hub, test_settings) -> NotificationDispatcher:
    return NotificationDispatcher(gateway, hub, app_settings=test_settings)


@pytest_asyncio.fixture
async def service(gateway, dispatcher, test_settings) -> TaskService:
    return TaskService(gateway, dispatcher, app_settings=test_settings)


@pytest.fixture
def make_tag(gateway: TransactionGateway):
    """Create a committed tag and return it."""

    async def _make(name: str, color: str = "#FF6B6B"):
        async def work(tx: AsyncSession):
            return await tag_svc.create_tag(tx, name, color)

        return await gateway.run(work)

    return _make


@pytest.fixture
def tag_count(gateway: TransactionGateway):
    """Read a tag's stored usage_count from a fresh session."""

    async def _count(tag_id) -> int:
        async with gateway.reader() as session:
            tag = await tag_svc.get_tag(session, tag_id)
            return tag.usage_count

    return _count


@pytest.fixture
def app(engine, test_settings: TrackerSettings):
    from tracker.app import create_app

    return create_app(test_settings, engine=engine)


@pytest_asyncio.fixture
async def client(app):
    """HTTPX async test client against the tracker app, acting as alice."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers={"X-User-Id": "alice"}
    ) as c:
        yield c
