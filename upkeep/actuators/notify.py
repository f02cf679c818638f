from __future__ import annotations

import logging

from upkeep.actuators.command import run_command
from upkeep.actuators.interface import Notification, Notifier
from upkeep.base.errors import ActuatorFailure

logger = logging.getLogger(__name__)


class NotifySendNotifier(Notifier):
    """Desktop notifications through libnotify's ``notify-send``.

    Runs in the caller's session; reaching another user's session bus is the
    job of whoever launches this process.
    """

    def __init__(
        self,
        app_name: str,
        icon: str | None = None,
        binary: str = "notify-send",
    ) -> None:
        self._app_name = app_name
        self._icon = icon
        self._binary = binary

    def _argv(self, notification: Notification) -> list[str]:
        argv = [
            self._binary,
            notification.title,
            notification.body,
            "-u",
            notification.urgency.value,
            "-a",
            self._app_name,
        ]
        if self._icon:
            argv += ["-i", self._icon]
        return argv

    async def send(self, notification: Notification) -> None:
        try:
            returncode, output = await run_command(self._argv(notification))
        except OSError as exc:
            raise ActuatorFailure(f"Cannot run {self._binary}: {exc}") from exc

        if returncode != 0:
            raise ActuatorFailure(
                f"{self._binary} exited with code {returncode}: {output.strip()}"
            )
        logger.info("Delivered notification %r", notification.title)
