from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ENV_PREFIX = "UPKEEP_"

_SCHEDULE_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_NUMBER_PATTERN = re.compile(r"^\d+(\.\d+)?$")


class Settings(BaseModel):
    """Runtime configuration for one maintenance identity."""

    model_config = ConfigDict(frozen=True)

    name: str = "system"

    min_interval: timedelta = timedelta(hours=24)
    idle_threshold: timedelta = timedelta(hours=1)
    overdue_threshold: timedelta = timedelta(days=7)
    nag_cooldown: timedelta = timedelta(days=7)
    pre_suspend_deadline: timedelta = timedelta(seconds=900)
    shutdown_deadline: timedelta = timedelta(seconds=120)
    cancel_grace: timedelta = timedelta(seconds=10)

    nag_enabled: bool = True
    announce_runs: bool = True

    schedule: str = "03:00"
    idle_poll_interval: timedelta = timedelta(minutes=15)
    idle_poll_delay: timedelta = timedelta(minutes=15)
    nag_interval: timedelta = timedelta(hours=6)
    nag_delay: timedelta = timedelta(seconds=10)

    state_dir: Path = Path("/var/lib/upkeep")
    database_uri: str | None = None

    maintenance_commands: list[list[str]] = Field(default_factory=list)
    cleanup_commands: list[list[str]] = Field(default_factory=list)

    notify_app_name: str = "Upkeep"
    notify_icon: str | None = None
    seat: str = "seat0"
    inhibit_what: str = "sleep:shutdown:idle"

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not value or "/" in value:
            raise ValueError("name must be non-empty and must not contain '/'")
        return value

    @field_validator("schedule")
    @classmethod
    def _check_schedule(cls, value: str) -> str:
        if not _SCHEDULE_PATTERN.match(value):
            raise ValueError("schedule must be a daily time in HH:MM format")
        return value

    @model_validator(mode="after")
    def _check_durations(self) -> Settings:
        for field_name, value in self:
            if isinstance(value, timedelta) and value < timedelta(0):
                raise ValueError(f"{field_name} must not be negative")
        return self

    @property
    def schedule_time(self) -> tuple[int, int]:
        hour, minute = self.schedule.split(":")
        return int(hour), int(minute)

    @property
    def resolved_database_uri(self) -> str:
        if self.database_uri:
            return self.database_uri
        return f"sqlite+aiosqlite:///{self.state_dir / 'state.db'}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``UPKEEP_*`` environment variables.

        Durations are given in seconds or as ISO 8601 durations; command lists
        are JSON arrays of argv arrays.
        """
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        for field_name, field in cls.model_fields.items():
            raw = environ.get(ENV_PREFIX + field_name.upper())
            if raw is None:
                continue
            if field.annotation == list[list[str]]:
                values[field_name] = json.loads(raw)
            elif field.annotation is timedelta and _NUMBER_PATTERN.match(raw):
                values[field_name] = float(raw)
            else:
                values[field_name] = raw

        return cls.model_validate(values)
