from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from upkeep.base.models import BaseDbModel

# Trigger hooks run in separate processes; give SQLite writers time to queue.
SQLITE_BUSY_TIMEOUT_SECONDS = 30


def make_engine(database_uri: str) -> AsyncEngine:
    connect_args: dict[str, object] = {}
    if database_uri.startswith("sqlite"):
        connect_args["timeout"] = SQLITE_BUSY_TIMEOUT_SECONDS
    return create_async_engine(database_uri, connect_args=connect_args)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    # Import all models so metadata knows about them
    import upkeep.state.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(BaseDbModel.metadata.create_all)
