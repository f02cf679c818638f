from __future__ import annotations

import enum
from datetime import datetime, timedelta

from upkeep.actuators.interface import Notification, Urgency
from upkeep.base.config import Settings
from upkeep.state.models import MaintenanceState


class NagDecision(enum.Enum):
    NONE = "none"
    SHOW_FIRST_RUN_NOTICE = "show-first-run-notice"
    SHOW_OVERDUE_NOTICE = "show-overdue-notice"


FIRST_RUN_NOTICE = Notification(
    title="Maintenance",
    body="Automatic maintenance is active. It will run daily when the device is idle.",
    urgency=Urgency.CRITICAL,
)


def overdue_reference(state: MaintenanceState) -> datetime | None:
    """Timestamp overdue-ness is measured from.

    The last successful run, or, while maintenance has never run, the grace
    period armed by the first-run notice.
    """
    if state.last_run_at is not None:
        return state.last_run_at
    return state.grace_started_at


def is_overdue(now: datetime, state: MaintenanceState, settings: Settings) -> bool:
    reference = overdue_reference(state)
    if reference is None:
        return False
    return now - reference > settings.overdue_threshold


def evaluate_nag(now: datetime, state: MaintenanceState, settings: Settings) -> NagDecision:
    if not settings.nag_enabled:
        return NagDecision.NONE

    if state.last_run_at is None and not state.first_run_notice_shown:
        return NagDecision.SHOW_FIRST_RUN_NOTICE

    if not is_overdue(now, state, settings):
        return NagDecision.NONE

    if (
        state.last_nag_at is not None
        and now - state.last_nag_at < settings.nag_cooldown
    ):
        return NagDecision.NONE

    return NagDecision.SHOW_OVERDUE_NOTICE


_UNITS = (("day", 86400), ("hour", 3600), ("minute", 60))


def describe_duration(value: timedelta) -> str:
    """Spell out a duration for the notices: "an hour", "7 days", "90 minutes"."""
    seconds = int(value.total_seconds())
    for unit, size in _UNITS:
        if seconds < size or seconds % size:
            continue
        count = seconds // size
        if count > 1:
            return f"{count} {unit}s"
        return "an hour" if unit == "hour" else f"a {unit}"
    minutes = seconds // 60
    if minutes == 1:
        return "a minute"
    if minutes:
        return f"{minutes} minutes"
    return f"{seconds} seconds"


def build_notification(decision: NagDecision, settings: Settings) -> Notification:
    if decision is NagDecision.SHOW_FIRST_RUN_NOTICE:
        return FIRST_RUN_NOTICE
    if decision is NagDecision.SHOW_OVERDUE_NOTICE:
        overdue = describe_duration(settings.overdue_threshold)
        idle = describe_duration(settings.idle_threshold)
        return Notification(
            title="Maintenance overdue",
            body=(
                f"Maintenance hasn't completed in over {overdue}. "
                f"Please leave the device idle for {idle}."
            ),
            urgency=Urgency.CRITICAL,
        )
    raise ValueError(f"No notification for {decision}")
