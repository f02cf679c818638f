from __future__ import annotations

import logging
import time
from collections.abc import Callable

from upkeep.actuators.command import run_command
from upkeep.actuators.interface import IdleProbe
from upkeep.base.errors import ProbeFailure
from upkeep.policy.triggers import IdleReading

logger = logging.getLogger(__name__)


def parse_properties(output: str) -> dict[str, str]:
    """Parse ``loginctl show-session`` ``Key=Value`` lines."""
    properties: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            properties[key.strip()] = value.strip()
    return properties


def find_seat_session(output: str, seat: str) -> str | None:
    """Return the first session id on ``seat`` from ``list-sessions --no-legend``."""
    for line in output.splitlines():
        columns = line.split()
        if columns and seat in columns[1:]:
            return columns[0]
    return None


class LogindIdleProbe(IdleProbe):
    """Reads the idle hint of the graphical session on a seat via ``loginctl``."""

    def __init__(
        self,
        seat: str = "seat0",
        binary: str = "loginctl",
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._seat = seat
        self._binary = binary
        self._monotonic = monotonic

    async def _loginctl(self, *args: str) -> str:
        try:
            returncode, output = await run_command([self._binary, *args])
        except OSError as exc:
            raise ProbeFailure(f"Cannot run {self._binary}: {exc}") from exc
        if returncode != 0:
            raise ProbeFailure(
                f"{self._binary} {args[0]} exited with code {returncode}"
            )
        return output

    async def read(self) -> IdleReading:
        session = find_seat_session(
            await self._loginctl("list-sessions", "--no-legend"), self._seat
        )
        if session is None:
            logger.debug("No session on %s, treating as not idle", self._seat)
            return IdleReading(is_idle=False)

        properties = parse_properties(
            await self._loginctl(
                "show-session",
                "-p",
                "IdleHint",
                "-p",
                "IdleSinceHintMonotonic",
                session,
            )
        )
        observed_at = self._monotonic()

        if properties.get("IdleHint") != "yes":
            return IdleReading(is_idle=False, observed_at=observed_at)

        try:
            idle_since_us = int(properties["IdleSinceHintMonotonic"])
        except (KeyError, ValueError) as exc:
            raise ProbeFailure(
                f"Unexpected IdleSinceHintMonotonic for session {session}"
            ) from exc

        return IdleReading(
            is_idle=True,
            idle_since=idle_since_us / 1_000_000 if idle_since_us else None,
            observed_at=observed_at,
        )
