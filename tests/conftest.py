from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tests.fakes import FakeClock, FakeInhibitor
from upkeep.actuators.interface import IdleProbe, MaintenanceActuator, Notifier
from upkeep.base.config import Settings
from upkeep.base.models import BaseDbModel
from upkeep.coordinator import RunCoordinator
from upkeep.policy.triggers import IdleReading
from upkeep.state.store import SqlStateStore


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(state_dir=tmp_path, announce_runs=False)


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    # Import all models so metadata knows about them
    import upkeep.state.models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'state.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(BaseDbModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def store(
    session_factory: async_sessionmaker[AsyncSession], settings: Settings
) -> SqlStateStore:
    state_store = SqlStateStore(session_factory, settings.name)
    await state_store.initialize()
    return state_store


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def actuator() -> AsyncMock:
    mock = AsyncMock(spec=MaintenanceActuator)
    mock.run_maintenance = AsyncMock(return_value=None)
    mock.run_cleanup = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def notifier() -> AsyncMock:
    mock = AsyncMock(spec=Notifier)
    mock.send = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def idle_probe() -> AsyncMock:
    mock = AsyncMock(spec=IdleProbe)
    mock.read = AsyncMock(return_value=IdleReading(is_idle=False))
    return mock


@pytest.fixture
def inhibitor() -> FakeInhibitor:
    return FakeInhibitor()


@pytest.fixture
def coordinator(
    settings: Settings,
    store: SqlStateStore,
    actuator: AsyncMock,
    notifier: AsyncMock,
    idle_probe: AsyncMock,
    inhibitor: FakeInhibitor,
    clock: FakeClock,
) -> RunCoordinator:
    return RunCoordinator(
        settings,
        store,
        actuator,
        notifier,
        idle_probe,
        inhibitor,
        clock,
    )
