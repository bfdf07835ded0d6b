"""FastAPI application factory."""

from __future__ import annotations

from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from carbon_collector.api.deps import AppState
from carbon_collector.api.routes import router
from carbon_collector.core.config import CollectorConfig, load_config
from carbon_collector.core.exceptions import (
    CarbonCollectorError,
    ConfigError,
    StorageError,
    SubmissionError,
    TaskNotFoundError,
)
from carbon_collector.scheduler.runtime import open_runtime
from carbon_collector.scheduler.scheduler import TaskScheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    scheduler: TaskScheduler | None = app.state._pending_scheduler

    async with AsyncExitStack() as stack:
        if scheduler is None:
            runtime = await stack.enter_async_context(open_runtime(config))
            scheduler, store = runtime.scheduler, runtime.store
            if config.api.run_scheduler:
                scheduler.start()
        else:
            store = app.state._pending_store

        app.state.app_state = AppState(config=config, scheduler=scheduler, store=store)
        yield


def create_app(
    config: CollectorConfig | None = None,
    scheduler: TaskScheduler | None = None,
    store=None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    A pre-built ``scheduler`` (and optional ``store``) is used as-is and
    neither started nor closed by the app.
    """
    import carbon_collector

    app = FastAPI(
        title="Carbon Price Collector API",
        description="Scheduled carbon-market price collection and QA",
        version=carbon_collector.__version__,
        lifespan=lifespan,
    )

    # Stash collaborators so lifespan can retrieve them
    app.state._pending_config = config
    app.state._pending_scheduler = scheduler
    app.state._pending_store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    # Exception handlers
    @app.exception_handler(CarbonCollectorError)
    async def collector_exception_handler(request: Request, exc: CarbonCollectorError):
        status_map = {
            TaskNotFoundError: 404,
            ConfigError: 400,
            SubmissionError: 502,
            StorageError: 500,
        }
        status = status_map.get(type(exc), 500)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
