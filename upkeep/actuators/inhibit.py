from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from upkeep.actuators.command import run_command
from upkeep.actuators.interface import Inhibitor
from upkeep.base.errors import ActuatorFailure

logger = logging.getLogger(__name__)

# systemd-inhibit that is still running after this long has taken the lock.
SETTLE_SECONDS = 0.5


class SystemdInhibitor(Inhibitor):
    """Blocks sleep and shutdown through logind by keeping ``systemd-inhibit``
    running around a placeholder ``sleep infinity`` for as long as the hold
    lasts.
    """

    def __init__(
        self,
        who: str,
        what: str = "sleep:shutdown:idle",
        binary: str = "systemd-inhibit",
        settle: float = SETTLE_SECONDS,
    ) -> None:
        self._who = who
        self._what = what
        self._binary = binary
        self._settle = settle

    def _argv(self, why: str) -> list[str]:
        return [
            self._binary,
            f"--what={self._what}",
            f"--who={self._who}",
            f"--why={why}",
            "--mode=block",
            "sleep",
            "infinity",
        ]

    @asynccontextmanager
    async def hold(self, why: str) -> AsyncIterator[None]:
        holder = asyncio.ensure_future(run_command(self._argv(why)))
        try:
            done, _ = await asyncio.wait({holder}, timeout=self._settle)
        except asyncio.CancelledError:
            holder.cancel()
            raise

        if done:
            try:
                returncode, output = holder.result()
            except OSError as exc:
                raise ActuatorFailure(f"Cannot run {self._binary}: {exc}") from exc
            raise ActuatorFailure(
                f"{self._binary} exited with code {returncode}: {output.strip()}"
            )

        logger.info("Inhibiting %s: %s", self._what, why)
        try:
            yield
        finally:
            if not holder.cancel():
                logger.warning(
                    "%s exited before release: %s",
                    self._binary,
                    holder.exception() or holder.result(),
                )
            await asyncio.wait({holder})
            logger.info("Released %s inhibitor", self._what)
