from upkeep.actuators.command import CommandActuator
from upkeep.actuators.inhibit import SystemdInhibitor
from upkeep.actuators.interface import (
    IdleProbe,
    Inhibitor,
    MaintenanceActuator,
    Notifier,
)
from upkeep.actuators.logind import LogindIdleProbe
from upkeep.actuators.notify import NotifySendNotifier
from upkeep.base.config import Settings


def create_actuator(settings: Settings) -> MaintenanceActuator:
    """Create the command actuator for the configured maintenance job."""
    return CommandActuator.create(
        settings.maintenance_commands, settings.cleanup_commands
    )


def create_notifier(settings: Settings) -> Notifier:
    return NotifySendNotifier(settings.notify_app_name, settings.notify_icon)


def create_idle_probe(settings: Settings) -> IdleProbe:
    return LogindIdleProbe(seat=settings.seat)


def create_inhibitor(settings: Settings) -> Inhibitor:
    return SystemdInhibitor(who=settings.notify_app_name, what=settings.inhibit_what)
