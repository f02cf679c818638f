import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from upkeep.base.config import Settings
from upkeep.coordinator import RunCoordinator
from upkeep.policy.nag import NagDecision
from upkeep.policy.triggers import TriggerEvent

logger = logging.getLogger(__name__)


async def run_trigger_job(coordinator: RunCoordinator, event: TriggerEvent) -> None:
    try:
        report = await coordinator.handle_trigger(event)
    except Exception:
        logger.exception("Trigger %s failed", event.value)
        return

    logger.info("Trigger %s finished: %s", event.value, report.outcome.value)


async def run_nag_job(coordinator: RunCoordinator) -> None:
    try:
        report = await coordinator.check_nag()
    except Exception:
        logger.exception("Nag check failed")
        return

    if report.decision is not NagDecision.NONE:
        logger.info(
            "Nag check: %s (delivered=%s)", report.decision.value, report.delivered
        )


def build_scheduler(
    coordinator: RunCoordinator,
    settings: Settings,
    now: datetime | None = None,
) -> AsyncIOScheduler:
    """Register the timer-driven triggers.

    The daily run fires at ``settings.schedule`` and is not caught up when
    missed; the idle poll and the nag check start after their own delays.
    """
    now = now or datetime.now(timezone.utc)
    hour, minute = settings.schedule_time

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_trigger_job,
        CronTrigger(hour=hour, minute=minute),
        args=[coordinator, TriggerEvent.SCHEDULED],
        id="scheduled_maintenance",
        coalesce=True,
    )
    scheduler.add_job(
        run_trigger_job,
        IntervalTrigger(
            seconds=settings.idle_poll_interval.total_seconds(),
            start_date=now + settings.idle_poll_delay,
        ),
        args=[coordinator, TriggerEvent.IDLE_POLL],
        id="idle_poll",
        coalesce=True,
    )
    if settings.nag_enabled:
        scheduler.add_job(
            run_nag_job,
            IntervalTrigger(
                seconds=settings.nag_interval.total_seconds(),
                start_date=now + settings.nag_delay,
            ),
            args=[coordinator],
            id="nag_check",
            coalesce=True,
        )
    return scheduler
