from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from upkeep.base.models import BaseDbModel, UpdatedAtMixin, UTCDateTime


class RunOutcome(enum.Enum):
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    INCOMPLETE = "incomplete"
    CANCELLED = "cancelled"


class MaintenanceStateRecord(UpdatedAtMixin, BaseDbModel):
    """Durable maintenance cadence, one row per maintenance identity."""

    __tablename__ = "maintenance_state"

    name: Mapped[str] = mapped_column(String, primary_key=True)
    last_run_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_nag_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    grace_started_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    first_run_notice_shown: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )


class MaintenanceRunRecord(BaseDbModel):
    __tablename__ = "maintenance_runs"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    event: Mapped[str] = mapped_column(String, nullable=False)
    outcome: Mapped[RunOutcome] = mapped_column(Enum(RunOutcome), nullable=False)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    error: Mapped[str | None] = mapped_column(String, nullable=True)


@dataclass(frozen=True)
class MaintenanceState:
    """Read-only snapshot of the state record."""

    last_run_at: datetime | None = None
    last_nag_at: datetime | None = None
    first_run_notice_shown: bool = False
    grace_started_at: datetime | None = None


@dataclass(frozen=True)
class StateDelta:
    """Field-set to commit. ``None`` / ``False`` leaves a field untouched."""

    last_run_at: datetime | None = None
    last_nag_at: datetime | None = None
    first_run_notice_shown: bool = False
    grace_started_at: datetime | None = None


@dataclass(frozen=True)
class RunEntry:
    event: str
    outcome: RunOutcome
    started_at: datetime
    finished_at: datetime | None = None
    error: str | None = None
