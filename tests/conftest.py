"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from upkeep.models import MaintenanceSchedule, Owner, Vehicle
from upkeep.models.base import Base
from upkeep.models.maintenance_schedule import CombinationPolicy
from upkeep.services.interval_calculator import apply_next_due

# Shared in-memory SQLite database, one per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

NOW = datetime(2026, 3, 1, 12, 0, 0)


class FrozenClock:
    """Deterministic clock; call it to read the time, advance it explicitly."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def test_owner(db_session: AsyncSession) -> Owner:
    """Create test owner."""
    owner = Owner(email="Jane.Smith@Example.com", first_name="Jane", last_name="Smith")
    db_session.add(owner)
    await db_session.commit()
    return owner


@pytest_asyncio.fixture
async def other_owner(db_session: AsyncSession) -> Owner:
    owner = Owner(email="bob.jones@example.com", first_name="Bob", last_name="Jones")
    db_session.add(owner)
    await db_session.commit()
    return owner


@pytest_asyncio.fixture
async def test_vehicle(db_session: AsyncSession, test_owner: Owner) -> Vehicle:
    """Create test vehicle at 55,000 km."""
    vehicle = Vehicle(
        owner_id=test_owner.id,
        vin="1HGCM82633A004352",
        year=2020,
        make="Honda",
        model="Accord",
        current_mileage=55000,
    )
    db_session.add(vehicle)
    await db_session.commit()
    return vehicle


@pytest_asyncio.fixture
async def make_schedule(db_session: AsyncSession, test_vehicle: Vehicle):
    """Factory for persisted schedules on the test vehicle with next-due values derived."""

    async def _make(**fields) -> MaintenanceSchedule:
        fields.setdefault("vehicle_id", test_vehicle.id)
        fields.setdefault("task_name", "Oil Change")
        fields.setdefault("combination_policy", CombinationPolicy.ANY)
        schedule = MaintenanceSchedule(**fields)
        apply_next_due(schedule)
        db_session.add(schedule)
        await db_session.commit()
        return schedule

    return _make
