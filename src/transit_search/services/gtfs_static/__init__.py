"""Static GTFS ingestion pipeline."""

from transit_search.services.gtfs_static.fetcher import GtfsFeedFetcher
from transit_search.services.gtfs_static.normalizer import GtfsNormalizer
from transit_search.services.gtfs_static.orchestrator import (
    IngestionOrchestrator,
    StoreThrottled,
    SyncReport,
)
from transit_search.services.gtfs_static.parser import GtfsParser, ParseError
from transit_search.services.gtfs_static.reader import GtfsFeedReader
from transit_search.services.gtfs_static.scheduler import SyncScheduler

__all__ = [
    "GtfsFeedFetcher",
    "GtfsFeedReader",
    "GtfsNormalizer",
    "GtfsParser",
    "IngestionOrchestrator",
    "ParseError",
    "StoreThrottled",
    "SyncReport",
    "SyncScheduler",
]
