"""Shared test fixtures for all test groups."""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from marketing_ops.db.base import Base
from marketing_ops.domain.phases import Phase, WorkItem

# In-memory SQLite shared across the connections of one engine
_TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

T0 = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def t0() -> datetime:
    """Fixed 'now' for deterministic time arithmetic (Monday 09:00 UTC)."""
    return T0


@pytest.fixture
def campaign_phases() -> list[Phase]:
    """Four sequential phases of one campaign, planned 5/3/7/4 days."""
    return [
        Phase(id="ph-1", campaign_id="c-1", phase_number=1, phase_name="Planning", planned_duration_days=5,
              planned_end_date=date(2025, 3, 7)),
        Phase(id="ph-2", campaign_id="c-1", phase_number=2, phase_name="Creative", planned_duration_days=3,
              planned_end_date=date(2025, 3, 10)),
        Phase(id="ph-3", campaign_id="c-1", phase_number=3, phase_name="Launch", planned_duration_days=7,
              planned_end_date=date(2025, 3, 17)),
        Phase(id="ph-4", campaign_id="c-1", phase_number=4, phase_name="Review", planned_duration_days=4,
              planned_end_date=date(2025, 3, 21)),
    ]


@pytest.fixture
def backlog_item() -> WorkItem:
    return WorkItem(id="wi-1", campaign_id="c-1", title="Hero banner")


@pytest.fixture
async def engine() -> AsyncEngine:
    """In-memory SQLite engine with all tables created.

    StaticPool keeps the single in-memory database alive across sessions.
    """
    engine = create_async_engine(
        _TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import all models so metadata is populated
    import marketing_ops.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncSession:
    async with session_factory() as session:
        yield session
