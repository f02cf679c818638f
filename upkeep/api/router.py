from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from upkeep.base.config import Settings
from upkeep.base.dependencies import get_coordinator, get_settings, get_store
from upkeep.base.errors import StoreFailure
from upkeep.coordinator import RunCoordinator
from upkeep.policy.nag import NagDecision
from upkeep.policy.triggers import Decision, TriggerEvent
from upkeep.state.models import RunOutcome
from upkeep.state.store import StateStore

router = APIRouter()


class StateResponse(BaseModel):
    name: str
    last_run_at: datetime | None
    last_nag_at: datetime | None
    grace_started_at: datetime | None
    first_run_notice_shown: bool
    due: bool
    overdue: bool


class RunResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: UUID
    event: str
    outcome: RunOutcome
    started_at: datetime
    finished_at: datetime | None
    error: str | None


class RunReportResponse(BaseModel):
    model_config = {"from_attributes": True}

    event: str
    decision: Decision | None
    outcome: RunOutcome
    started_at: datetime
    finished_at: datetime | None
    detail: str | None


class NagReportResponse(BaseModel):
    model_config = {"from_attributes": True}

    decision: NagDecision
    delivered: bool
    detail: str | None


def _unavailable(exc: StoreFailure) -> HTTPException:
    return HTTPException(status_code=503, detail=str(exc))


@router.get("/state", response_model=StateResponse)
async def get_state(
    coordinator: RunCoordinator = Depends(get_coordinator),
    settings: Settings = Depends(get_settings),
) -> StateResponse:
    try:
        status = await coordinator.status()
    except StoreFailure as exc:
        raise _unavailable(exc) from exc

    return StateResponse(
        name=settings.name,
        last_run_at=status.state.last_run_at,
        last_nag_at=status.state.last_nag_at,
        grace_started_at=status.state.grace_started_at,
        first_run_notice_shown=status.state.first_run_notice_shown,
        due=status.due,
        overdue=status.overdue,
    )


@router.get("/runs", response_model=list[RunResponse])
async def list_runs(
    limit: int = Query(20, ge=1, le=500),
    store: StateStore = Depends(get_store),
) -> list[RunResponse]:
    try:
        runs = await store.list_runs(limit)
    except StoreFailure as exc:
        raise _unavailable(exc) from exc
    return [RunResponse.model_validate(run) for run in runs]


@router.post("/triggers/{event}", response_model=RunReportResponse)
async def fire_trigger(
    event: TriggerEvent,
    coordinator: RunCoordinator = Depends(get_coordinator),
) -> RunReportResponse:
    try:
        report = await coordinator.handle_trigger(event)
    except StoreFailure as exc:
        raise _unavailable(exc) from exc
    return RunReportResponse.model_validate(report)


@router.post("/nag", response_model=NagReportResponse)
async def check_nag(
    coordinator: RunCoordinator = Depends(get_coordinator),
) -> NagReportResponse:
    try:
        report = await coordinator.check_nag()
    except StoreFailure as exc:
        raise _unavailable(exc) from exc
    return NagReportResponse.model_validate(report)
