"""Admin routes for feed ingestion and the sync scheduler."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from transit_search.logging import get_logger
from transit_search.routers.deps import get_scheduler
from transit_search.services.gtfs_static.scheduler import SyncScheduler

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class IngestRequest(BaseModel):
    """Request body for a feed ingestion run."""

    feeds: list[str] = Field(
        default_factory=list,
        description="Feed URLs or local ZIP paths. Empty uses the configured FEED_URLS.",
    )


class FeedReportResponse(BaseModel):
    source: str
    status: Literal["success", "failed"]
    feed_hash: str
    started_at: str
    ended_at: Optional[str] = None
    duration_ms: Optional[int] = None
    counts: dict[str, dict[str, int]]
    warnings: list[str]
    errors: list[str]


class SyncReportResponse(BaseModel):
    """Response body for a feed ingestion run."""

    sync_id: str
    status: Literal["success", "partial", "failed"]
    started_at: str
    ended_at: Optional[str] = None
    duration_ms: Optional[int] = None
    feeds: list[FeedReportResponse]


class SchedulerStatusResponse(BaseModel):
    running: bool
    run_count: int
    last_run_at: Optional[str] = None
    last_status: Optional[str] = None
    interval_sec: int
    feeds: list[str]


# TODO: Protect the admin routes once an auth layer exists; they are open
# and only suitable for development deployments.
@router.post(
    "/ingest",
    response_model=SyncReportResponse,
    summary="Ingest GTFS feeds",
    description=(
        "Fetch each feed, normalize its seven resources and write them to the "
        "store. Feeds are ingested concurrently; a failing feed does not stop "
        "the others. Records the store keeps rejecting are reported as warnings."
    ),
)
async def ingest_feeds(
    body: IngestRequest,
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
) -> dict[str, Any]:
    feeds = body.feeds or scheduler.feeds
    if not feeds:
        raise HTTPException(
            status_code=400,
            detail="No feeds given and FEED_URLS is not configured",
        )

    report = await scheduler.run_once(feeds)
    return report.to_dict()


@router.post(
    "/ingest/start",
    response_model=SchedulerStatusResponse,
    summary="Start the periodic sync",
)
async def start_scheduler(
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
) -> dict[str, Any]:
    await scheduler.start()
    return await scheduler.get_status()


@router.post(
    "/ingest/stop",
    response_model=SchedulerStatusResponse,
    summary="Stop the periodic sync",
)
async def stop_scheduler(
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
) -> dict[str, Any]:
    await scheduler.stop()
    return await scheduler.get_status()


@router.get(
    "/ingest/status",
    response_model=SchedulerStatusResponse,
    summary="Get periodic sync status",
)
async def scheduler_status(
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
) -> dict[str, Any]:
    return await scheduler.get_status()
