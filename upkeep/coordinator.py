from __future__ import annotations

import asyncio
import contextlib
import logging
import traceback
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from upkeep.actuators.interface import (
    IdleProbe,
    Inhibitor,
    MaintenanceActuator,
    Notification,
    Notifier,
    Urgency,
)
from upkeep.base.clock import Clock, SystemClock
from upkeep.base.config import Settings
from upkeep.base.errors import ActuatorFailure, DeadlineExceeded, ProbeFailure
from upkeep.locks import NamedLock
from upkeep.policy.gate import is_due
from upkeep.policy.nag import NagDecision, build_notification, evaluate_nag, is_overdue
from upkeep.policy.triggers import (
    TRIGGER_POLICIES,
    Decision,
    IdleReading,
    TriggerEvent,
    TriggerPolicy,
    evaluate_trigger,
)
from upkeep.state.models import MaintenanceState, RunEntry, RunOutcome, StateDelta
from upkeep.state.store import StateStore

logger = logging.getLogger(__name__)

SHUTDOWN_EVENT = "shutdown-cleanup"
ERROR_DETAIL_CHARS = 2000

_RUN_STARTED = Notification(
    title="Maintenance", body="Starting maintenance...", urgency=Urgency.LOW
)
_RUN_FINISHED = Notification(
    title="Maintenance", body="Maintenance complete.", urgency=Urgency.LOW
)


@dataclass(frozen=True)
class RunReport:
    event: str
    decision: Decision | None
    outcome: RunOutcome
    started_at: datetime
    finished_at: datetime | None = None
    detail: str | None = None


@dataclass(frozen=True)
class NagReport:
    decision: NagDecision
    delivered: bool
    detail: str | None = None


@dataclass(frozen=True)
class MaintenanceStatus:
    state: MaintenanceState
    due: bool
    overdue: bool


class RunCoordinator:
    """Glues triggers to the evaluators, the collaborators and the state store.

    The maintenance path and the nag path each take their own named lock, so
    a slow maintenance run never delays a notification decision and vice
    versa. State is committed only after the preceding action succeeded;
    ``StoreFailure`` is raised to the caller, every other failure is reported.
    """

    def __init__(
        self,
        settings: Settings,
        store: StateStore,
        actuator: MaintenanceActuator,
        notifier: Notifier,
        idle_probe: IdleProbe,
        inhibitor: Inhibitor,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._actuator = actuator
        self._notifier = notifier
        self._idle_probe = idle_probe
        self._inhibitor = inhibitor
        self._clock = clock or SystemClock()
        self._maintenance_lock = NamedLock(
            f"{settings.name}.maintenance", settings.state_dir
        )
        self._nag_lock = NamedLock(f"{settings.name}.nag", settings.state_dir)

    async def status(self) -> MaintenanceStatus:
        state = await self._store.get()
        now = self._clock.now()
        return MaintenanceStatus(
            state=state,
            due=is_due(now, state.last_run_at, self._settings.min_interval),
            overdue=is_overdue(now, state, self._settings),
        )

    async def handle_trigger(
        self, event: TriggerEvent, cancel: asyncio.Event | None = None
    ) -> RunReport:
        """Evaluate one trigger and run maintenance if the policy says so."""
        policy = TRIGGER_POLICIES[event]
        deadline = policy.deadline(self._settings)
        begun = self._clock.monotonic()
        lock_timeout = (
            deadline.total_seconds()
            if policy.wait_for_lock and deadline is not None
            else 0
        )

        async with self._maintenance_lock.hold(timeout=lock_timeout) as acquired:
            if not acquired:
                if policy.wait_for_lock:
                    logger.warning(
                        "Trigger %s: running maintenance did not finish in time",
                        event.value,
                    )
                    return RunReport(
                        event=event.value,
                        decision=None,
                        outcome=RunOutcome.INCOMPLETE,
                        started_at=self._clock.now(),
                        detail="maintenance in progress past the deadline",
                    )
                logger.info("Trigger %s: maintenance already in progress", event.value)
                return RunReport(
                    event=event.value,
                    decision=Decision.SKIP,
                    outcome=RunOutcome.SKIPPED,
                    started_at=self._clock.now(),
                    detail="maintenance already in progress",
                )

            state = await self._store.get()
            now = self._clock.now()
            idle_reading = await self._read_idle() if policy.requires_idle else None
            decision = evaluate_trigger(
                event, now, state, idle_reading, self._settings
            )

            if decision is Decision.SKIP:
                detail = (
                    "not idle long enough"
                    if is_due(now, state.last_run_at, self._settings.min_interval)
                    else "not due"
                )
                logger.info("Trigger %s: skipping (%s)", event.value, detail)
                return RunReport(
                    event=event.value,
                    decision=decision,
                    outcome=RunOutcome.SKIPPED,
                    started_at=now,
                    detail=detail,
                )

            timeout: float | None = None
            if deadline is not None:
                elapsed = self._clock.monotonic() - begun
                timeout = max(0.0, deadline.total_seconds() - elapsed)

            return await self._run_maintenance(
                event, policy, decision, now, timeout, cancel
            )

    async def _run_maintenance(
        self,
        event: TriggerEvent,
        policy: TriggerPolicy,
        decision: Decision,
        started_at: datetime,
        timeout: float | None,
        cancel: asyncio.Event | None,
    ) -> RunReport:
        logger.info("Trigger %s: starting maintenance (%s)", event.value, decision.value)
        await self._announce(_RUN_STARTED)

        inhibit: AbstractAsyncContextManager[None] = (
            self._inhibitor.hold(f"Running {event.value} maintenance")
            if policy.inhibit
            else contextlib.nullcontext()
        )
        try:
            async with inhibit:
                outcome, error = await self._execute(
                    self._actuator.run_maintenance, event.value, timeout, cancel
                )
        except ActuatorFailure as exc:
            logger.error("Trigger %s: could not inhibit sleep: %s", event.value, exc)
            outcome, error = RunOutcome.FAILED, f"could not inhibit sleep: {exc}"
        finished_at = self._clock.now()
        entry = RunEntry(
            event=event.value,
            outcome=outcome,
            started_at=started_at,
            finished_at=finished_at,
            error=error,
        )

        if outcome is RunOutcome.SUCCEEDED:
            await self._store.commit(StateDelta(last_run_at=finished_at), run=entry)
            logger.info("Trigger %s: maintenance complete", event.value)
            await self._announce(_RUN_FINISHED)
        else:
            await self._store.commit(StateDelta(), run=entry)

        return RunReport(
            event=event.value,
            decision=decision,
            outcome=outcome,
            started_at=started_at,
            finished_at=finished_at,
            detail=error,
        )

    async def handle_shutdown(self, cancel: asyncio.Event | None = None) -> RunReport:
        """Run the safe cleanup before power-off.

        Not gated by the maintenance interval and never touches the state
        record, but still excludes a concurrent maintenance run.
        """
        deadline = self._settings.shutdown_deadline.total_seconds()
        begun = self._clock.monotonic()

        async with self._maintenance_lock.hold(timeout=deadline) as acquired:
            started_at = self._clock.now()
            if not acquired:
                logger.warning("Shutdown cleanup: maintenance still running, giving up")
                return RunReport(
                    event=SHUTDOWN_EVENT,
                    decision=None,
                    outcome=RunOutcome.INCOMPLETE,
                    started_at=started_at,
                    detail="maintenance in progress past the deadline",
                )

            timeout = max(0.0, deadline - (self._clock.monotonic() - begun))
            outcome, error = await self._execute(
                self._actuator.run_cleanup, SHUTDOWN_EVENT, timeout, cancel
            )
            finished_at = self._clock.now()
            await self._store.commit(
                StateDelta(),
                run=RunEntry(
                    event=SHUTDOWN_EVENT,
                    outcome=outcome,
                    started_at=started_at,
                    finished_at=finished_at,
                    error=error,
                ),
            )
            return RunReport(
                event=SHUTDOWN_EVENT,
                decision=None,
                outcome=outcome,
                started_at=started_at,
                finished_at=finished_at,
                detail=error,
            )

    async def check_nag(self) -> NagReport:
        """Escalate to the user if maintenance is overdue."""
        async with self._nag_lock.hold() as acquired:
            if not acquired:
                return NagReport(
                    decision=NagDecision.NONE,
                    delivered=False,
                    detail="nag check already in progress",
                )

            state = await self._store.get()
            now = self._clock.now()
            decision = evaluate_nag(now, state, self._settings)
            if decision is NagDecision.NONE:
                return NagReport(decision=decision, delivered=False)

            try:
                await self._notifier.send(build_notification(decision, self._settings))
            except ActuatorFailure as exc:
                logger.warning("Could not deliver %s, will retry: %s", decision.value, exc)
                return NagReport(decision=decision, delivered=False, detail=str(exc))
            except Exception:
                logger.exception("Notifier crashed while delivering %s", decision.value)
                return NagReport(
                    decision=decision,
                    delivered=False,
                    detail=traceback.format_exc()[:ERROR_DETAIL_CHARS],
                )

            if decision is NagDecision.SHOW_FIRST_RUN_NOTICE:
                delta = StateDelta(
                    first_run_notice_shown=True,
                    grace_started_at=now,
                    last_nag_at=now,
                )
            else:
                delta = StateDelta(last_nag_at=now)

            await self._store.commit(delta)
            logger.info("Delivered %s", decision.value)
            return NagReport(decision=decision, delivered=True)

    async def _read_idle(self) -> IdleReading:
        try:
            return await self._idle_probe.read()
        except ProbeFailure as exc:
            logger.warning("Idle state unknown, treating session as active: %s", exc)
        except Exception:
            logger.exception("Idle probe crashed, treating session as active")
        return IdleReading.unknown()

    async def _announce(self, notification: Notification) -> None:
        if not self._settings.announce_runs:
            return
        try:
            await self._notifier.send(notification)
        except Exception as exc:
            logger.warning("Could not announce %r: %s", notification.body, exc)

    async def _execute(
        self,
        action: Callable[[], Awaitable[None]],
        label: str,
        timeout: float | None,
        cancel: asyncio.Event | None,
    ) -> tuple[RunOutcome, str | None]:
        """Await ``action`` until it finishes, ``timeout`` passes or ``cancel`` is set.

        Must be called with the maintenance lock held.
        """
        task = asyncio.ensure_future(action())
        waiters: set[asyncio.Future[Any]] = {task}
        cancel_waiter: asyncio.Future[Any] | None = None
        if cancel is not None:
            cancel_waiter = asyncio.ensure_future(cancel.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            await self._abandon(task, label)
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task in done:
            try:
                task.result()
            except asyncio.CancelledError:
                logger.warning("%s: action cancelled itself", label)
                return RunOutcome.CANCELLED, "action was cancelled"
            except ActuatorFailure as exc:
                logger.error("%s: action failed: %s", label, exc)
                return RunOutcome.FAILED, str(exc)
            except Exception:
                logger.exception("%s: action crashed", label)
                return RunOutcome.FAILED, traceback.format_exc()[:ERROR_DETAIL_CHARS]
            return RunOutcome.SUCCEEDED, None

        await self._abandon(task, label)
        if cancel_waiter is not None and cancel_waiter in done:
            logger.warning("%s: cancelled by operator", label)
            return RunOutcome.CANCELLED, "cancelled by operator"

        assert timeout is not None
        exc = DeadlineExceeded(f"{label} did not finish within {_seconds(timeout)}")
        logger.warning("%s", exc)
        return RunOutcome.INCOMPLETE, str(exc)

    async def _abandon(self, task: asyncio.Future[None], label: str) -> None:
        """Cancel ``task`` and wait ``cancel_grace`` for it to stop.

        An action that outlives the grace period keeps the maintenance lock
        until it finally returns, so no other run can start beside it.
        """
        task.cancel()
        grace = self._settings.cancel_grace.total_seconds()
        done, _ = await asyncio.wait({task}, timeout=grace)
        if done:
            if not task.cancelled() and task.exception() is not None:
                logger.warning(
                    "%s: action raised while stopping: %s", label, task.exception()
                )
            return

        logger.error(
            "%s: action still running %s after cancellation, holding the "
            "maintenance lock until it exits",
            label,
            _seconds(grace),
        )
        self._maintenance_lock.release_after(task)
        task.add_done_callback(lambda t: _log_late_result(t, label))


def _log_late_result(task: asyncio.Future[None], label: str) -> None:
    if task.cancelled():
        logger.info("%s: abandoned action stopped", label)
    elif task.exception() is not None:
        logger.warning(
            "%s: abandoned action ended with %r", label, task.exception()
        )
    else:
        logger.info("%s: abandoned action finished on its own", label)


def _seconds(value: float) -> str:
    return f"{value:.3g}s" if value < 60 else f"{value:.0f}s"
