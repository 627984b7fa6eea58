"""Shared test fixtures for the booking API.

Each test gets a fresh SQLite file database so separate sessions behave
like separate connections, which the compare-and-set tests rely on.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["SCHEDULER_ENABLED"] = "false"

from datetime import datetime
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from baroni.core.clock import FixedClock
from baroni.core.database import Base, get_db
from baroni.core.deps import get_clock
from baroni.main import app
from baroni.services.auth import token_for_user

# Import all models to ensure they're registered with Base.metadata
from baroni.models.user import User
from baroni.models.availability import Availability, TimeSlot, SlotStatus
from baroni.models.appointment import Appointment  # noqa: F401
from baroni.models.transaction import Transaction  # noqa: F401
from baroni.models.star_wallet import StarWallet, StarTransaction  # noqa: F401
from baroni.models.message import Message  # noqa: F401
from baroni.models.notification import Notification  # noqa: F401

# Noon UTC; the test star lives in Mali (UTC+0) so local time is the same.
NOW = datetime(2026, 3, 10, 12, 0)
TOMORROW = "2026-03-11"


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    """Direct DB session for test setup/assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest_asyncio.fixture
async def client(session_factory, clock):
    """Async HTTP test client bound to the per-test database and clock."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def users(db):
    star = User(email="star@example.com", full_name="Awa Star", role="star", country="Mali", contact="+22370000001")
    fan = User(email="fan@example.com", full_name="Moussa Fan", role="fan", country="Mali",
               contact="223 70 00 00 02", coin_balance=1000)
    poor_fan = User(email="poor@example.com", full_name="Poor Fan", role="fan", country="Mali",
                    contact="+22370000003", coin_balance=50)
    other_fan = User(email="other@example.com", full_name="Other Fan", role="fan", country="Mali",
                     contact="+22370000004", coin_balance=1000)
    admin = User(email="admin@example.com", full_name="Admin", role="admin")
    db.add_all([star, fan, poor_fan, other_fan, admin])
    await db.commit()
    return SimpleNamespace(star=star, fan=fan, poor_fan=poor_fan, other_fan=other_fan, admin=admin)


@pytest.fixture
def auth():
    def headers(user: User) -> dict:
        return {"Authorization": f"Bearer {token_for_user(user)}"}
    return headers


@pytest_asyncio.fixture
async def availability(db, users):
    """Tomorrow's calendar for the star with three open slots."""
    av = Availability(
        user_id=users.star.id,
        date=TOMORROW,
        time_slots=[
            TimeSlot(slot="10:00 - 10:20", status=SlotStatus.AVAILABLE),
            TimeSlot(slot="11:00 - 11:20", status=SlotStatus.AVAILABLE),
            TimeSlot(slot="14:00 - 14:20", status=SlotStatus.AVAILABLE),
        ],
    )
    db.add(av)
    await db.commit()
    await db.refresh(av, attribute_names=["time_slots"])
    return av


@pytest.fixture
def reload(db):
    """Fetch a fresh copy of a row, bypassing the session's cached state."""
    async def _reload(model, obj_id):
        return await db.get(model, obj_id, populate_existing=True)
    return _reload
