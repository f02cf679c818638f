from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from upkeep.actuators import (
    create_actuator,
    create_idle_probe,
    create_inhibitor,
    create_notifier,
)
from upkeep.base.config import Settings
from upkeep.base.db import create_schema, make_engine, make_session_factory
from upkeep.coordinator import RunCoordinator
from upkeep.state.store import SqlStateStore


@dataclass(frozen=True)
class Runtime:
    settings: Settings
    engine: AsyncEngine
    store: SqlStateStore
    coordinator: RunCoordinator


@asynccontextmanager
async def open_runtime(settings: Settings) -> AsyncGenerator[Runtime]:
    """Wire store, collaborators and coordinator for one maintenance identity."""
    settings.state_dir.mkdir(parents=True, exist_ok=True)
    engine = make_engine(settings.resolved_database_uri)
    try:
        await create_schema(engine)
        store = SqlStateStore(make_session_factory(engine), settings.name)
        await store.initialize()
        coordinator = RunCoordinator(
            settings,
            store,
            create_actuator(settings),
            create_notifier(settings),
            create_idle_probe(settings),
            create_inhibitor(settings),
        )
        yield Runtime(
            settings=settings, engine=engine, store=store, coordinator=coordinator
        )
    finally:
        await engine.dispose()
