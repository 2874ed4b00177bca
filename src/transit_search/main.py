"""FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from transit_search.config import Settings

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from transit_search.config import get_settings
from transit_search.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from transit_search.routers.admin import router as admin_router
from transit_search.routers.routes import router as routes_router
from transit_search.routers.stops import router as stops_router
from transit_search.services.gtfs_static.orchestrator import IngestionOrchestrator
from transit_search.services.gtfs_static.scheduler import SyncScheduler
from transit_search.services.itinerary.search import RouteSearchService
from transit_search.store import StoreAdapter, build_store

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    setup_logging(settings)
    logger.info("Starting Transit Route Search API", store_backend=settings.store_backend)

    scheduler: SyncScheduler = app.state.scheduler
    if settings.sync_auto_start:
        await scheduler.start()

    yield

    if scheduler.is_running:
        await scheduler.stop()

    logger.info("Shutting down Transit Route Search API")
    await app.state.store.close()


def create_app(store: StoreAdapter | None = None, settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    `store` replaces the configured backend, which is how tests run the
    app against an in-memory store.
    """
    settings = settings or get_settings()
    store = store or build_store(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Search GTFS transit trips between two stops on a travel date",
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )

    orchestrator = IngestionOrchestrator.from_settings(store, settings)
    app.state.settings = settings
    app.state.store = store
    app.state.orchestrator = orchestrator
    app.state.scheduler = SyncScheduler(
        orchestrator, settings.feed_urls, settings.sync_interval_sec
    )
    app.state.search_service = RouteSearchService(store, settings.stop_times_stop_index)

    _install_middleware(app, settings)
    _install_error_handlers(app)

    app.include_router(admin_router)
    app.include_router(routes_router)
    app.include_router(stops_router)
    app.add_api_route("/health", health_check, methods=["GET"], tags=["meta"])

    return app


def _install_middleware(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: Any) -> Any:
        """Tag every log line of a request with its X-Request-ID."""
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        bind_request_context(request_id=request_id, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", exc_info=exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )


async def health_check(request: Request) -> dict[str, Any]:
    """Report store reachability and the state of the periodic sync."""
    settings: Settings = request.app.state.settings
    missing_env = settings.missing_required_env()
    store_ok = await request.app.state.store.ping()
    sync = await request.app.state.scheduler.get_status()
    sync_stalled = settings.sync_auto_start and not sync["running"]

    issues: list[str] = []
    if missing_env:
        issues.append("Missing required environment variables: " + ", ".join(missing_env))
    if not store_ok:
        issues.append("Store is not reachable")
    if sync_stalled:
        issues.append("Sync scheduler is not running")

    if missing_env:
        status = "unhealthy"
    elif issues:
        status = "degraded"
    else:
        status = "healthy"

    return {
        "service": settings.app_name,
        "status": status,
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "store": store_ok,
            "storeBackend": settings.store_backend,
            "sync": {
                "schedulerRunning": sync["running"],
                "runCount": sync["run_count"],
                "lastRunAt": sync["last_run_at"],
                "lastStatus": sync["last_status"],
            },
        },
        "issues": issues,
    }


app = create_app()
