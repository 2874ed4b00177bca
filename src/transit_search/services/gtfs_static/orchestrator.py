"""GTFS ingestion orchestrator - fetch, parse, normalize and store feeds."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from transit_search.logging import get_logger
from transit_search.services.gtfs_static.fetcher import (
    FetchError,
    GtfsFeedFetcher,
    InvalidZipError,
)
from transit_search.services.gtfs_static.normalizer import GtfsNormalizer
from transit_search.services.gtfs_static.parser import GtfsParser, ParseError
from transit_search.services.gtfs_static.reader import GtfsFeedReader

if TYPE_CHECKING:
    from collections.abc import Sequence

    from transit_search.config import Settings
    from transit_search.store import StoreAdapter
    from transit_search.store.base import Item

logger = get_logger(__name__)

DEFAULT_STAGING_DIR = "/tmp/gtfs-data"
DEFAULT_RETRY_MAX_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_BASE = 0.5

# Errors that abort one feed; other feeds in the same run carry on
FEED_ERRORS = (ParseError, FetchError, InvalidZipError, FileNotFoundError)


class StoreThrottled(Exception):
    """Raised when records are still rejected after the last write retry."""

    def __init__(self, table: str, unprocessed: list[Item], attempts: int) -> None:
        self.table = table
        self.unprocessed = unprocessed
        self.attempts = attempts
        super().__init__(
            f"{len(unprocessed)} records left unprocessed in {table} after {attempts} attempts"
        )


class FeedReport:
    """Collects per-table counts, warnings, and errors for one feed."""

    def __init__(self, source: str) -> None:
        self.source = source
        self.feed_hash = ""
        self.started_at = datetime.now(timezone.utc)
        self.ended_at: datetime | None = None
        self.duration_ms: int | None = None
        self.counts: dict[str, dict[str, int]] = {}
        self.warnings: list[str] = []
        self.errors: list[str] = []

    @property
    def status(self) -> str:
        return "failed" if self.errors else "success"

    def init_table(self, table: str) -> None:
        self.counts[table] = {"read": 0, "written": 0, "unprocessed": 0}

    def finish(self) -> None:
        self.ended_at = datetime.now(timezone.utc)
        self.duration_ms = int((self.ended_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "status": self.status,
            "feed_hash": self.feed_hash,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_ms": self.duration_ms,
            "counts": self.counts,
            "warnings": self.warnings[:100],  # cap for response size
            "errors": self.errors[:100],
        }


class SyncReport:
    """Outcome of one ingestion run across all configured feeds."""

    def __init__(self, sync_id: str | None = None) -> None:
        self.sync_id = sync_id or str(uuid.uuid4())
        self.started_at = datetime.now(timezone.utc)
        self.ended_at: datetime | None = None
        self.duration_ms: int | None = None
        self.feeds: list[FeedReport] = []

    @property
    def status(self) -> str:
        failed = sum(1 for feed in self.feeds if feed.status == "failed")
        if failed == 0:
            return "success"
        if failed == len(self.feeds):
            return "failed"
        return "partial"

    def finish(self) -> None:
        self.ended_at = datetime.now(timezone.utc)
        self.duration_ms = int((self.ended_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sync_id": self.sync_id,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_ms": self.duration_ms,
            "feeds": [feed.to_dict() for feed in self.feeds],
        }


class IngestionOrchestrator:
    """Drives feeds through the normalizer into the store.

    Feeds are processed concurrently, and within a feed the seven tables
    are written concurrently. Records the store rejects are retried with
    exponential backoff; whatever is still rejected after the last attempt
    is reported as a warning and left out.
    """

    def __init__(
        self,
        store: StoreAdapter,
        *,
        fetcher: GtfsFeedFetcher | None = None,
        normalizer: GtfsNormalizer | None = None,
        staging_dir: str | Path = DEFAULT_STAGING_DIR,
        retry_max_attempts: int = DEFAULT_RETRY_MAX_ATTEMPTS,
        retry_backoff_base: float = DEFAULT_RETRY_BACKOFF_BASE,
    ) -> None:
        self._store = store
        self._fetcher = fetcher or GtfsFeedFetcher()
        self._normalizer = normalizer or GtfsNormalizer()
        self.staging_dir = Path(staging_dir)
        self.retry_max_attempts = retry_max_attempts
        self.retry_backoff_base = retry_backoff_base

    @classmethod
    def from_settings(cls, store: StoreAdapter, settings: Settings) -> IngestionOrchestrator:
        fetcher = GtfsFeedFetcher(
            timeout_sec=settings.feed_fetch_timeout_sec,
            max_retries=settings.feed_fetch_max_retries,
            backoff_base=settings.feed_fetch_backoff_base,
        )
        return cls(
            store,
            fetcher=fetcher,
            staging_dir=settings.feed_staging_dir,
            retry_max_attempts=settings.write_retry_max_attempts,
            retry_backoff_base=settings.write_retry_backoff_base,
        )

    async def run(self, feeds: Sequence[str]) -> SyncReport:
        """Ingest every feed concurrently and return the combined report."""
        report = SyncReport()
        logger.info("Starting GTFS sync", sync_id=report.sync_id, feeds=list(feeds))

        report.feeds = list(await asyncio.gather(*(self.ingest_feed(feed) for feed in feeds)))
        report.finish()

        logger.info(
            "GTFS sync complete",
            sync_id=report.sync_id,
            status=report.status,
            duration_ms=report.duration_ms,
            feed_count=len(report.feeds),
        )
        return report

    async def ingest_feed(self, source: str) -> FeedReport:
        """Fetch, stage and store one feed. Never raises; failures go in the report."""
        report = FeedReport(source)
        logger.info("Processing feed", source=source)
        try:
            staged = await self._fetcher.stage(source, self.staging_dir)
            report.feed_hash = staged.feed_hash
            await self.ingest_directory(staged.path, report)
        except FEED_ERRORS as exc:
            report.errors.append(str(exc))
            logger.error("Feed ingestion aborted", source=source, error=str(exc))
        except Exception as exc:
            report.errors.append(f"{type(exc).__name__}: {exc}")
            logger.error("Unexpected feed ingestion error", source=source, exc_info=exc)

        report.finish()
        logger.info(
            "Feed processed",
            source=source,
            status=report.status,
            duration_ms=report.duration_ms,
            counts=report.counts,
            warnings_count=len(report.warnings),
        )
        return report

    async def ingest_directory(
        self, path: str | Path, report: FeedReport | None = None
    ) -> FeedReport:
        """Store the resources of an extracted feed directory.

        Every resource is parsed before the first write, so a malformed
        resource aborts the feed without touching the store.

        Raises:
            ParseError: If a resource is missing or malformed.
        """
        report = report or FeedReport(str(path))
        reader = GtfsFeedReader(path)
        resources = reader.present_resources()

        parsed = await asyncio.gather(
            *(asyncio.to_thread(self._load_resource, reader, filename) for filename in resources)
        )

        tables: dict[str, list[Item]] = {}
        for table, records in zip(resources.values(), parsed):
            report.init_table(table)
            report.counts[table]["read"] = len(records)
            tables[table] = records

        # Wait for every table; failures are recorded per table
        outcomes = await asyncio.gather(
            *(self._write_table(table, records, report) for table, records in tables.items()),
            return_exceptions=True,
        )
        for table, outcome in zip(tables, outcomes):
            if outcome is None:
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            report.errors.append(f"{table}: {type(outcome).__name__}: {outcome}")
            logger.error("Table write failed", table=table, exc_info=outcome)
        return report

    def _load_resource(self, reader: GtfsFeedReader, filename: str) -> list[Item]:
        """Parse and normalize one resource into a list of records."""
        parser = GtfsParser(reader)
        records = list(self._normalizer.normalize(filename, parser.parse_file(filename)))
        logger.debug("Parsed GTFS resource", filename=filename, row_count=len(records))
        return records

    async def _write_table(self, table: str, records: list[Item], report: FeedReport) -> None:
        unprocessed = 0
        try:
            await self._write_with_retry(table, records)
        except StoreThrottled as exc:
            unprocessed = len(exc.unprocessed)
            report.warnings.append(str(exc))
            logger.warning(
                "Records dropped after write retries",
                table=table,
                unprocessed_count=unprocessed,
                attempts=exc.attempts,
            )

        report.counts[table]["written"] = len(records) - unprocessed
        report.counts[table]["unprocessed"] = unprocessed
        logger.info(
            "Stored table",
            table=table,
            written=len(records) - unprocessed,
            unprocessed=unprocessed,
        )

    async def _write_with_retry(self, table: str, records: list[Item]) -> int:
        """Write records, re-submitting rejected ones with exponential backoff.

        Returns the number of write attempts made.

        Raises:
            StoreThrottled: If records remain rejected after the last retry.
        """
        pending = records
        attempts = 0
        while pending:
            pending = await self._store.batch_write(table, pending)
            attempts += 1
            if not pending:
                break

            logger.warning(
                "There were unprocessed records",
                table=table,
                unprocessed_count=len(pending),
                attempt=attempts,
            )
            if attempts > self.retry_max_attempts:
                raise StoreThrottled(table, pending, attempts)
            await asyncio.sleep(self.retry_backoff_base * 2 ** (attempts - 1))
        return attempts
