from __future__ import annotations

import asyncio
import logging
import shlex
import time
from collections.abc import Sequence
from typing import Self

from upkeep.actuators.interface import MaintenanceActuator
from upkeep.base.errors import ActuatorFailure

logger = logging.getLogger(__name__)

TERMINATE_GRACE_SECONDS = 5.0
OUTPUT_TAIL_CHARS = 2000


async def run_command(argv: Sequence[str]) -> tuple[int, str]:
    """Run ``argv`` and return its exit code and combined stdout/stderr.

    If the awaiting task is cancelled, the process is terminated (then killed)
    before the cancellation propagates.
    """
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    try:
        stdout, _ = await process.communicate()
    except asyncio.CancelledError:
        await _terminate(process)
        raise

    assert process.returncode is not None
    return process.returncode, stdout.decode(errors="replace")


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    logger.warning("Terminating pid %d", process.pid)
    process.terminate()
    try:
        await asyncio.wait_for(process.wait(), TERMINATE_GRACE_SECONDS)
    except TimeoutError:
        logger.warning("pid %d ignored SIGTERM, killing", process.pid)
        process.kill()
        await process.wait()


class CommandActuator(MaintenanceActuator):
    """Runs configured commands one after another; the first failure aborts."""

    def __init__(
        self,
        maintenance_commands: Sequence[Sequence[str]],
        cleanup_commands: Sequence[Sequence[str]] = (),
    ) -> None:
        self._maintenance_commands = [list(c) for c in maintenance_commands]
        self._cleanup_commands = [list(c) for c in cleanup_commands]

    @classmethod
    def create(
        cls,
        maintenance_commands: Sequence[Sequence[str]],
        cleanup_commands: Sequence[Sequence[str]] = (),
    ) -> Self:
        if not maintenance_commands:
            logger.warning("No maintenance commands configured; runs will be no-ops")
        return cls(maintenance_commands, cleanup_commands)

    async def run_maintenance(self) -> None:
        await self._run_all("maintenance", self._maintenance_commands)

    async def run_cleanup(self) -> None:
        await self._run_all("cleanup", self._cleanup_commands)

    async def _run_all(self, label: str, commands: list[list[str]]) -> None:
        for argv in commands:
            printable = shlex.join(argv)
            logger.info("Running %s step: %s", label, printable)
            start = time.monotonic()

            try:
                returncode, output = await run_command(argv)
            except OSError as exc:
                raise ActuatorFailure(f"{printable}: {exc}") from exc

            duration = time.monotonic() - start
            if returncode != 0:
                logger.error(
                    "%s step failed after %.1fs (exit %d): %s\n%s",
                    label,
                    duration,
                    returncode,
                    printable,
                    output[-OUTPUT_TAIL_CHARS:],
                )
                raise ActuatorFailure(f"{printable} exited with code {returncode}")

            logger.info("%s step finished in %.1fs: %s", label, duration, printable)
