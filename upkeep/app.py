import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from upkeep.api.router import router as maintenance_router
from upkeep.base.config import Settings
from upkeep.runtime import open_runtime
from upkeep.scheduler import build_scheduler

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    settings = Settings.from_env()
    async with open_runtime(settings) as runtime:
        app.state.settings = settings
        app.state.store = runtime.store
        app.state.coordinator = runtime.coordinator

        scheduler = build_scheduler(runtime.coordinator, settings)
        scheduler.start()
        yield
        scheduler.shutdown()


app = FastAPI(title="Upkeep", lifespan=lifespan)
app.include_router(maintenance_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
