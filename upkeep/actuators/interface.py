from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass

from upkeep.policy.triggers import IdleReading


class Urgency(enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    urgency: Urgency = Urgency.NORMAL


class MaintenanceActuator(ABC):
    """Performs the maintenance job. Raises ``ActuatorFailure`` on failure.

    Both actions may take minutes and must honour task cancellation.
    """

    @abstractmethod
    async def run_maintenance(self) -> None: ...

    @abstractmethod
    async def run_cleanup(self) -> None: ...


class Notifier(ABC):
    @abstractmethod
    async def send(self, notification: Notification) -> None: ...


class IdleProbe(ABC):
    @abstractmethod
    async def read(self) -> IdleReading: ...


class Inhibitor(ABC):
    """Keeps the device from sleeping or powering off while held.

    Entering ``hold()`` raises ``ActuatorFailure`` when the inhibition cannot
    be taken.
    """

    @abstractmethod
    def hold(self, why: str) -> AbstractAsyncContextManager[None]: ...
