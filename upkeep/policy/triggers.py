from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta

from upkeep.base.config import Settings
from upkeep.policy.gate import is_due
from upkeep.state.models import MaintenanceState


class TriggerEvent(enum.Enum):
    SCHEDULED = "scheduled"
    PRE_SUSPEND = "pre-suspend"
    IDLE_POLL = "idle-poll"
    MANUAL = "manual"


class Decision(enum.Enum):
    SKIP = "skip"
    RUN_BLOCKING = "run-blocking"
    RUN_BEST_EFFORT = "run-best-effort"


@dataclass(frozen=True)
class IdleReading:
    """Idle state of the user session.

    ``idle_since`` and ``observed_at`` are both monotonic-clock seconds, so wall
    clock adjustments never change the measured idle duration.
    """

    is_idle: bool
    idle_since: float | None = None
    observed_at: float | None = None

    @classmethod
    def unknown(cls) -> IdleReading:
        return cls(is_idle=False)

    def idle_for(self) -> timedelta | None:
        if not self.is_idle or self.idle_since is None or self.observed_at is None:
            return None
        return timedelta(seconds=max(0.0, self.observed_at - self.idle_since))


@dataclass(frozen=True)
class TriggerPolicy:
    blocking: bool
    wait_for_lock: bool
    requires_idle: bool = False
    # Hold a sleep/shutdown inhibitor while running. Never for the sleep hook
    # itself, which would deadlock the suspend it runs ahead of.
    inhibit: bool = False
    deadline_setting: str | None = None

    def deadline(self, settings: Settings) -> timedelta | None:
        if self.deadline_setting is None:
            return None
        return getattr(settings, self.deadline_setting)


TRIGGER_POLICIES: dict[TriggerEvent, TriggerPolicy] = {
    TriggerEvent.MANUAL: TriggerPolicy(
        blocking=True, wait_for_lock=False, inhibit=True
    ),
    TriggerEvent.SCHEDULED: TriggerPolicy(
        blocking=True, wait_for_lock=False, inhibit=True
    ),
    TriggerEvent.PRE_SUSPEND: TriggerPolicy(
        blocking=True,
        wait_for_lock=True,
        deadline_setting="pre_suspend_deadline",
    ),
    TriggerEvent.IDLE_POLL: TriggerPolicy(
        blocking=False, wait_for_lock=False, requires_idle=True
    ),
}


def evaluate_trigger(
    event: TriggerEvent,
    now: datetime,
    state: MaintenanceState,
    idle_reading: IdleReading | None,
    settings: Settings,
) -> Decision:
    """Decide whether a trigger should run maintenance. First match wins:

    1. not due -> SKIP (the only guard against duplicate runs across triggers)
    2. manual, scheduled and pre-suspend -> RUN_BLOCKING
    3. idle poll with the session idle for at least ``idle_threshold``
       -> RUN_BEST_EFFORT, otherwise SKIP
    """
    if not is_due(now, state.last_run_at, settings.min_interval):
        return Decision.SKIP

    policy = TRIGGER_POLICIES[event]
    if policy.blocking:
        return Decision.RUN_BLOCKING

    if policy.requires_idle:
        idle_for = idle_reading.idle_for() if idle_reading is not None else None
        if idle_for is None or idle_for < settings.idle_threshold:
            return Decision.SKIP

    return Decision.RUN_BEST_EFFORT
