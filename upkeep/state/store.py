from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from sqlalchemy import case, func, literal, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import InstrumentedAttribute

from upkeep.base.errors import StoreFailure
from upkeep.base.models import UTCDateTime
from upkeep.state.models import (
    MaintenanceRunRecord,
    MaintenanceState,
    MaintenanceStateRecord,
    RunEntry,
    StateDelta,
)

logger = logging.getLogger(__name__)


class StateStore(ABC):
    """Sole owner of the maintenance state record.

    Readers always get a fresh snapshot; writers hand over a delta that is
    applied atomically, so no component keeps a mutable copy around.
    """

    @abstractmethod
    async def initialize(self) -> None: ...

    @abstractmethod
    async def get(self) -> MaintenanceState: ...

    @abstractmethod
    async def commit(self, delta: StateDelta, run: RunEntry | None = None) -> None: ...

    @abstractmethod
    async def list_runs(self, limit: int = 20) -> list[MaintenanceRunRecord]: ...


def _advance(column: InstrumentedAttribute[datetime | None], value: datetime) -> Any:
    """Compare-and-swap: only ever move a timestamp column forward."""
    bound = literal(value, UTCDateTime())
    return case(
        (column.is_(None), bound),
        (column < bound, bound),
        else_=column,
    )


def _update_values(delta: StateDelta) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if delta.last_run_at is not None:
        values["last_run_at"] = _advance(
            MaintenanceStateRecord.last_run_at, delta.last_run_at
        )
    if delta.last_nag_at is not None:
        values["last_nag_at"] = _advance(
            MaintenanceStateRecord.last_nag_at, delta.last_nag_at
        )
    if delta.first_run_notice_shown:
        values["first_run_notice_shown"] = True
    if delta.grace_started_at is not None:
        values["grace_started_at"] = func.coalesce(
            MaintenanceStateRecord.grace_started_at,
            literal(delta.grace_started_at, UTCDateTime()),
        )
    return values


class SqlStateStore(StateStore):
    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession], name: str
    ) -> None:
        self._session_factory = session_factory
        self._name = name

    async def initialize(self) -> None:
        """Create the state record with all fields absent, if missing."""
        try:
            async with self._session_factory() as session, session.begin():
                if await session.get(MaintenanceStateRecord, self._name) is None:
                    session.add(MaintenanceStateRecord(name=self._name))
                    logger.info("Created maintenance state for %r", self._name)
        except IntegrityError:
            # Another process created it first.
            logger.debug("Maintenance state for %r already exists", self._name)
        except SQLAlchemyError as exc:
            raise StoreFailure(
                f"Failed to initialize maintenance state for {self._name!r}"
            ) from exc

    async def get(self) -> MaintenanceState:
        try:
            async with self._session_factory() as session:
                record = await session.get(MaintenanceStateRecord, self._name)
        except SQLAlchemyError as exc:
            raise StoreFailure(
                f"Failed to read maintenance state for {self._name!r}"
            ) from exc

        if record is None:
            return MaintenanceState()

        return MaintenanceState(
            last_run_at=record.last_run_at,
            last_nag_at=record.last_nag_at,
            first_run_notice_shown=record.first_run_notice_shown,
            grace_started_at=record.grace_started_at,
        )

    async def commit(self, delta: StateDelta, run: RunEntry | None = None) -> None:
        """Apply ``delta`` and record ``run`` in a single transaction."""
        values = _update_values(delta)

        try:
            async with self._session_factory() as session, session.begin():
                if values:
                    stmt = (
                        update(MaintenanceStateRecord)
                        .where(MaintenanceStateRecord.name == self._name)
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    result = await session.execute(stmt)
                    if result.rowcount == 0:
                        session.add(
                            MaintenanceStateRecord(
                                name=self._name,
                                last_run_at=delta.last_run_at,
                                last_nag_at=delta.last_nag_at,
                                first_run_notice_shown=delta.first_run_notice_shown,
                                grace_started_at=delta.grace_started_at,
                            )
                        )

                if run is not None:
                    session.add(
                        MaintenanceRunRecord(
                            name=self._name,
                            event=run.event,
                            outcome=run.outcome,
                            started_at=run.started_at,
                            finished_at=run.finished_at,
                            error=run.error,
                        )
                    )
        except SQLAlchemyError as exc:
            raise StoreFailure(
                f"Failed to commit maintenance state for {self._name!r}"
            ) from exc

    async def list_runs(self, limit: int = 20) -> list[MaintenanceRunRecord]:
        stmt = (
            select(MaintenanceRunRecord)
            .where(MaintenanceRunRecord.name == self._name)
            .order_by(MaintenanceRunRecord.started_at.desc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                return list((await session.execute(stmt)).scalars().all())
        except SQLAlchemyError as exc:
            raise StoreFailure(
                f"Failed to list maintenance runs for {self._name!r}"
            ) from exc
