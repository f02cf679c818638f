from fastapi import Request

from upkeep.base.config import Settings
from upkeep.coordinator import RunCoordinator
from upkeep.state.store import StateStore


def get_coordinator(request: Request) -> RunCoordinator:
    return request.app.state.coordinator


def get_store(request: Request) -> StateStore:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
