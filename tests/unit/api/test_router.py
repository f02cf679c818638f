from collections.abc import AsyncGenerator
from datetime import timedelta
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi import FastAPI

from tests.fakes import FakeClock
from upkeep.api.router import router
from upkeep.base.config import Settings
from upkeep.base.dependencies import get_coordinator, get_settings, get_store
from upkeep.base.errors import StoreFailure
from upkeep.coordinator import RunCoordinator
from upkeep.state.models import StateDelta
from upkeep.state.store import SqlStateStore


@pytest.fixture
def app(
    coordinator: RunCoordinator, store: SqlStateStore, settings: Settings
) -> FastAPI:
    test_app = FastAPI()
    test_app.include_router(router)
    test_app.dependency_overrides[get_coordinator] = lambda: coordinator
    test_app.dependency_overrides[get_store] = lambda: store
    test_app.dependency_overrides[get_settings] = lambda: settings
    return test_app


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)  # type: ignore[arg-type]
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestState:
    async def test_fresh_state(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/state")

        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "system"
        assert data["last_run_at"] is None
        assert data["first_run_notice_shown"] is False
        assert data["due"] is True
        assert data["overdue"] is False

    async def test_overdue_state(
        self, client: httpx.AsyncClient, store: SqlStateStore, clock: FakeClock
    ) -> None:
        await store.commit(StateDelta(last_run_at=clock.now() - timedelta(days=8)))

        data = (await client.get("/state")).json()

        assert data["last_run_at"] is not None
        assert data["overdue"] is True

    async def test_store_failure_is_503(
        self, app: FastAPI, client: httpx.AsyncClient
    ) -> None:
        broken = AsyncMock(spec=RunCoordinator)
        broken.status.side_effect = StoreFailure("database is locked")
        app.dependency_overrides[get_coordinator] = lambda: broken

        resp = await client.get("/state")

        assert resp.status_code == 503
        assert "database is locked" in resp.json()["detail"]


class TestTriggers:
    async def test_manual_trigger_runs(
        self, client: httpx.AsyncClient, actuator: AsyncMock
    ) -> None:
        resp = await client.post("/triggers/manual")

        assert resp.status_code == 200
        data = resp.json()
        assert data["event"] == "manual"
        assert data["decision"] == "run-blocking"
        assert data["outcome"] == "succeeded"
        actuator.run_maintenance.assert_awaited_once()

    async def test_repeated_trigger_skips(self, client: httpx.AsyncClient) -> None:
        await client.post("/triggers/scheduled")
        resp = await client.post("/triggers/pre-suspend")

        assert resp.json()["outcome"] == "skipped"

    async def test_unknown_trigger_is_422(self, client: httpx.AsyncClient) -> None:
        resp = await client.post("/triggers/reboot")

        assert resp.status_code == 422

    async def test_runs_are_listed(self, client: httpx.AsyncClient) -> None:
        await client.post("/triggers/manual")

        resp = await client.get("/runs", params={"limit": 5})

        assert resp.status_code == 200
        runs = resp.json()
        assert len(runs) == 1
        assert runs[0]["event"] == "manual"
        assert runs[0]["outcome"] == "succeeded"
        assert runs[0]["error"] is None

    async def test_runs_limit_is_validated(self, client: httpx.AsyncClient) -> None:
        resp = await client.get("/runs", params={"limit": 0})

        assert resp.status_code == 422


class TestNag:
    async def test_first_nag_delivers_intro(
        self, client: httpx.AsyncClient, notifier: AsyncMock
    ) -> None:
        resp = await client.post("/nag")

        assert resp.status_code == 200
        assert resp.json() == {
            "decision": "show-first-run-notice",
            "delivered": True,
            "detail": None,
        }
        notifier.send.assert_awaited_once()

    async def test_second_nag_is_quiet(self, client: httpx.AsyncClient) -> None:
        await client.post("/nag")

        resp = await client.post("/nag")

        assert resp.json()["decision"] == "none"
