"""Periodic GTFS sync scheduler."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from transit_search.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from transit_search.services.gtfs_static.orchestrator import (
        IngestionOrchestrator,
        SyncReport,
    )

logger = get_logger(__name__)


class SyncScheduler:
    """Re-ingests the configured feeds on a fixed interval.

    Usage:
        scheduler = SyncScheduler(orchestrator, feeds, interval_sec=86400)
        await scheduler.start()   # launches background task
        await scheduler.stop()    # cancels background task

        # Or run a single sync:
        report = await scheduler.run_once()
    """

    def __init__(
        self,
        orchestrator: IngestionOrchestrator,
        feeds: Sequence[str],
        interval_sec: int,
    ) -> None:
        self._orchestrator = orchestrator
        self._feeds = list(feeds)
        self._interval = interval_sec

        self._task: asyncio.Task[None] | None = None
        self._running = False
        # Serializes manual and scheduled runs against the same store
        self._lock = asyncio.Lock()
        self._run_count = 0
        self._last_run_at: datetime | None = None
        self._last_report: SyncReport | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def run_count(self) -> int:
        return self._run_count

    @property
    def feeds(self) -> list[str]:
        return list(self._feeds)

    async def start(self) -> None:
        """Start the background sync loop."""
        if self._running:
            logger.warning("Scheduler already running, ignoring start request")
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("GTFS sync scheduler started", interval_sec=self._interval)

    async def stop(self) -> None:
        """Stop the background sync loop."""
        if not self._running:
            return

        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("GTFS sync scheduler stopped")

    async def run_once(self, feeds: Sequence[str] | None = None) -> SyncReport:
        """Run one sync over `feeds`, or the configured feeds when omitted."""
        async with self._lock:
            self._run_count += 1
            self._last_run_at = datetime.now(timezone.utc)
            report = await self._orchestrator.run(list(feeds) if feeds else self._feeds)
            self._last_report = report
            return report

    async def get_status(self) -> dict[str, Any]:
        """Get current scheduler status for health/admin endpoints."""
        return {
            "running": self._running,
            "run_count": self._run_count,
            "last_run_at": self._last_run_at.isoformat() if self._last_run_at else None,
            "last_status": self._last_report.status if self._last_report else None,
            "interval_sec": self._interval,
            "feeds": self._feeds,
        }

    async def _loop(self) -> None:
        """Sync loop that runs until stopped."""
        while self._running:
            if not self._feeds:
                logger.warning("No feeds configured, skipping scheduled sync")
            else:
                try:
                    await self.run_once()
                except Exception as exc:
                    logger.error("Scheduled sync failed unexpectedly", exc_info=exc)

            try:
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break
