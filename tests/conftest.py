"""Shared test fixtures for PracticeFlow API tests.

Uses a throwaway SQLite file per test (aiosqlite) so tests run without
PostgreSQL and concurrent sessions get their own connections.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.database import Base, get_db
from app.main import app

# Import all models to ensure they're registered with Base.metadata
from app.models.appointment import Appointment, SlotClaim  # noqa: F401
from app.models.inventory import InventoryItem, ServiceInventoryRelationship, StockMovement  # noqa: F401
from app.models.notification import AttemptStatus, NotificationAttempt, NotificationChannel  # noqa: F401
from app.models.schedule import BlockedDate, WorkingSchedule  # noqa: F401
from app.models.service import Service
from app.models.user import Role
from app.services import notification_orchestrator
from app.services.notification_orchestrator import ChannelResult
from tests.helpers import make_user


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh database file with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield factory
    app.dependency_overrides.pop(get_db, None)


@pytest_asyncio.fixture
async def db(session_factory):
    """Direct DB session for test setup/assertions."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def channels():
    """Replace every notification channel with a mock that reports SENT."""
    fakes = {
        channel: AsyncMock(return_value=ChannelResult(AttemptStatus.SENT, external_ref=f"{channel.value}-ref"))
        for channel in NotificationChannel
    }
    with patch.dict(notification_orchestrator.CHANNEL_DISPATCHERS, fakes):
        yield fakes



@pytest_asyncio.fixture
async def practitioner(db):
    return await make_user(db, Role.PRACTITIONER, "Priya", phone="0821110000", email="priya@example.com")


@pytest_asyncio.fixture
async def other_practitioner(db):
    return await make_user(db, Role.PRACTITIONER, "Pieter", phone="0821112222")


@pytest_asyncio.fixture
async def client_user(db):
    return await make_user(db, Role.CLIENT, "Carla", phone="0823334444", email="carla@example.com")


@pytest_asyncio.fixture
async def other_client(db):
    return await make_user(db, Role.CLIENT, "Colin", phone="0825556666")


@pytest_asyncio.fixture
async def admin(db):
    return await make_user(db, Role.SUPER_ADMIN, "Ada", email="ada@example.com")


async def _service(db, name: str, minutes: int, price: str) -> Service:
    svc = Service(name=name, duration_minutes=minutes, price=Decimal(price))
    db.add(svc)
    await db.commit()
    await db.refresh(svc)
    return svc


@pytest_asyncio.fixture
async def service(db):
    return await _service(db, "Facial", 30, "350.00")


@pytest_asyncio.fixture
async def long_service(db):
    return await _service(db, "Massage", 45, "500.00")
