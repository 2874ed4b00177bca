"""Integration tests for the PostgreSQL store backend using a real database."""

from __future__ import annotations

import os
from datetime import date
from typing import TYPE_CHECKING

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from transit_search.services.gtfs_static.orchestrator import IngestionOrchestrator
from transit_search.services.itinerary.search import RouteSearchService
from transit_search.store import KeyCondition, StoreAdapter, build_feed_tables
from transit_search.store.sql import SqlBackend

from .fixtures.gtfs_fixture import STOPS_TXT_MODIFIED, write_gtfs_dir

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

RUN_INTEGRATION = os.getenv("RUN_INTEGRATION_TESTS") == "1"
DATABASE_URL = os.getenv("DATABASE_URL")

if not RUN_INTEGRATION or not DATABASE_URL:
    pytest.skip(
        "Integration tests require RUN_INTEGRATION_TESTS=1 and DATABASE_URL to be set",
        allow_module_level=True,
    )


@pytest_asyncio.fixture
async def sql_store() -> AsyncGenerator[StoreAdapter, None]:
    """Store over freshly created tables."""
    engine = create_async_engine(DATABASE_URL, pool_pre_ping=True)
    backend = SqlBackend(engine, build_feed_tables())
    async with engine.begin() as conn:
        await conn.run_sync(backend.metadata.drop_all)
    await backend.create_tables()
    store = StoreAdapter(backend, build_feed_tables())
    try:
        yield store
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_ingest_and_search(sql_store: StoreAdapter, tmp_path: Path) -> None:
    orchestrator = IngestionOrchestrator(sql_store, retry_backoff_base=0)
    report = await orchestrator.ingest_directory(write_gtfs_dir(tmp_path))

    assert report.status == "success"
    assert report.counts["stop_times"]["written"] == 10

    results = await RouteSearchService(sql_store).search_routes(
        "50001", "50002", date(2024, 6, 14)
    )
    assert [result.trip_id for result in results] == ["trip-001-003", "trip-001-001"]


@pytest.mark.asyncio
async def test_reingest_overwrites_items(sql_store: StoreAdapter, tmp_path: Path) -> None:
    orchestrator = IngestionOrchestrator(sql_store, retry_backoff_base=0)
    await orchestrator.ingest_directory(write_gtfs_dir(tmp_path / "v1"))
    await orchestrator.ingest_directory(write_gtfs_dir(tmp_path / "v2", stops=STOPS_TXT_MODIFIED))

    stop = await sql_store.get("stops", "50001")

    assert stop is not None
    assert stop["stop_name"] != "Waterfront Station"


@pytest.mark.asyncio
async def test_query_by_stop_index(sql_store: StoreAdapter, tmp_path: Path) -> None:
    orchestrator = IngestionOrchestrator(sql_store, retry_backoff_base=0)
    await orchestrator.ingest_directory(write_gtfs_dir(tmp_path))

    items = await sql_store.query(
        "stop_times",
        KeyCondition(partition_value="50001"),
        index_name="ByStopId",
        projection=["trip_id", "stop_sequence"],
    )

    assert [item["trip_id"] for item in items] == [
        "trip-001-001",
        "trip-001-002",
        "trip-001-003",
        "trip-002-001",
    ]
    assert set(items[0]) == {"trip_id", "stop_sequence"}


@pytest.mark.asyncio
async def test_missing_key_returns_none(sql_store: StoreAdapter) -> None:
    assert await sql_store.get("trips", "nope") is None
    assert await sql_store.batch_get("trips", ["nope"]) == {}


@pytest.mark.asyncio
async def test_looping_trip_in_one_chunk(sql_store: StoreAdapter, tmp_path: Path) -> None:
    stop_times = (
        "trip_id,arrival_time,departure_time,stop_id,stop_sequence\n"
        "trip-001-001,06:30:00,06:30:00,50001,1\n"
        "trip-001-001,06:35:00,06:35:00,50002,2\n"
        "trip-001-001,06:45:00,06:45:00,50001,3\n"
    )
    orchestrator = IngestionOrchestrator(sql_store, retry_backoff_base=0)

    report = await orchestrator.ingest_directory(write_gtfs_dir(tmp_path, stop_times=stop_times))

    assert report.status == "success"
    stop_time = await sql_store.get("stop_times", ("trip-001-001", "50001"))
    assert stop_time is not None
    assert stop_time["stop_sequence"] == 3
