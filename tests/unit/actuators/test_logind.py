from unittest.mock import AsyncMock, patch

import pytest

from upkeep.actuators.logind import (
    LogindIdleProbe,
    find_seat_session,
    parse_properties,
)
from upkeep.base.errors import ProbeFailure

SESSIONS = """\
      3 1000 alice seat0 tty2
     c1  120 gdm   seat0 tty1
      7 1001 bob         pts/0
"""


def _probe() -> LogindIdleProbe:
    return LogindIdleProbe(monotonic=lambda: 10_000.0)


class TestParsing:
    def test_finds_first_session_on_seat(self) -> None:
        assert find_seat_session(SESSIONS, "seat0") == "3"

    def test_no_session_on_seat(self) -> None:
        assert find_seat_session(SESSIONS, "seat1") is None

    def test_parse_properties(self) -> None:
        props = parse_properties("IdleHint=yes\nIdleSinceHintMonotonic=123\n\n")

        assert props == {"IdleHint": "yes", "IdleSinceHintMonotonic": "123"}


class TestLogindIdleProbe:
    async def test_idle_session(self) -> None:
        outputs = [
            (0, SESSIONS),
            (0, "IdleHint=yes\nIdleSinceHintMonotonic=4600000000\n"),
        ]
        with patch(
            "upkeep.actuators.logind.run_command", AsyncMock(side_effect=outputs)
        ) as run:
            reading = await _probe().read()

        assert reading.is_idle is True
        assert reading.idle_since == 4600.0
        assert reading.observed_at == 10_000.0
        assert reading.idle_for() is not None
        assert reading.idle_for().total_seconds() == 5400.0
        assert run.await_args.args[0][-1] == "3"

    async def test_active_session(self) -> None:
        outputs = [
            (0, SESSIONS),
            (0, "IdleHint=no\nIdleSinceHintMonotonic=0\n"),
        ]
        with patch(
            "upkeep.actuators.logind.run_command", AsyncMock(side_effect=outputs)
        ):
            reading = await _probe().read()

        assert reading.is_idle is False
        assert reading.idle_for() is None

    async def test_no_graphical_session_is_not_idle(self) -> None:
        with patch(
            "upkeep.actuators.logind.run_command",
            AsyncMock(return_value=(0, "      7 1001 bob  pts/0\n")),
        ):
            reading = await _probe().read()

        assert reading.is_idle is False

    async def test_loginctl_failure(self) -> None:
        with patch(
            "upkeep.actuators.logind.run_command",
            AsyncMock(return_value=(1, "Failed to connect to bus")),
        ):
            with pytest.raises(ProbeFailure):
                await _probe().read()

    async def test_missing_loginctl(self) -> None:
        with patch(
            "upkeep.actuators.logind.run_command",
            AsyncMock(side_effect=FileNotFoundError("loginctl")),
        ):
            with pytest.raises(ProbeFailure):
                await _probe().read()

    async def test_garbled_idle_since(self) -> None:
        outputs = [(0, SESSIONS), (0, "IdleHint=yes\nIdleSinceHintMonotonic=n/a\n")]
        with patch(
            "upkeep.actuators.logind.run_command", AsyncMock(side_effect=outputs)
        ):
            with pytest.raises(ProbeFailure):
                await _probe().read()
