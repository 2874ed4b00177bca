"""Tests for RouteSearchService - end-to-end over an ingested feed."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

import pytest

from transit_search.services.gtfs_static.orchestrator import IngestionOrchestrator
from transit_search.services.itinerary.correlator import NoRouteFound
from transit_search.services.itinerary.search import RouteSearchService

from .fixtures.gtfs_fixture import write_gtfs_dir

if TYPE_CHECKING:
    from pathlib import Path

    from transit_search.store import StoreAdapter

MINIMAL_FEED = {
    "agency": "agency_name,agency_url,agency_timezone\nDemo,https://demo.test,UTC\n",
    "calendar": (
        "service_id,monday,tuesday,wednesday,thursday,friday,saturday,sunday,start_date,end_date\n"
        "S1,1,1,1,1,1,1,1,20240101,20241231\n"
    ),
    "calendar_dates": "service_id,date,exception_type\n",
    "stops": "stop_id,stop_name\n1,First\n2,Second\n",
    "routes": "route_id,route_short_name\nR1,1\n",
    "trips": "route_id,service_id,trip_id\nR1,S1,T1\n",
    "stop_times": (
        "trip_id,arrival_time,departure_time,stop_id,stop_sequence\n"
        "T1,08:05:00,08:05:00,2,2\n"
        "T1,08:00:00,08:00:00,1,1\n"
    ),
}


class TestSearchRoutes:
    async def test_minimal_feed_end_to_end(self, store: StoreAdapter, tmp_path: Path) -> None:
        orchestrator = IngestionOrchestrator(store, retry_backoff_base=0)
        await orchestrator.ingest_directory(write_gtfs_dir(tmp_path, **MINIMAL_FEED))

        results = await RouteSearchService(store).search_routes("1", "2", date(2024, 6, 15))

        assert len(results) == 1
        assert results[0].trip["trip_id"] == "T1"
        assert [st["stop_sequence"] for st in results[0].itinerary] == [1, 2]
        assert results[0].route["route_id"] == "R1"

    async def test_weekday_results_ordered_by_departure(self, seeded_store: StoreAdapter) -> None:
        results = await RouteSearchService(seeded_store).search_routes(
            "50001", "50002", date(2024, 6, 14)
        )

        assert [result.trip_id for result in results] == ["trip-001-003", "trip-001-001"]

    async def test_weekend_service(self, seeded_store: StoreAdapter) -> None:
        results = await RouteSearchService(seeded_store).search_routes(
            "50001", "50002", date(2024, 6, 15)
        )

        assert [result.trip_id for result in results] == ["trip-002-001"]

    async def test_holiday_exceptions(self, seeded_store: StoreAdapter) -> None:
        results = await RouteSearchService(seeded_store).search_routes(
            "50001", "50002", date(2024, 7, 1)
        )

        assert [result.trip_id for result in results] == ["trip-002-001"]
        assert results[0].service_exception["exception_type"] == "1"

    async def test_reverse_direction(self, seeded_store: StoreAdapter) -> None:
        results = await RouteSearchService(seeded_store).search_routes(
            "50003", "50001", date(2024, 6, 14)
        )

        assert [result.trip_id for result in results] == ["trip-001-002"]

    async def test_no_common_trip(self, seeded_store: StoreAdapter) -> None:
        with pytest.raises(NoRouteFound, match="no trip serves both stops"):
            await RouteSearchService(seeded_store).search_routes(
                "50003", "99999", date(2024, 6, 14)
            )

    async def test_directed_trip_not_running(self, seeded_store: StoreAdapter) -> None:
        # trip-001-002 runs 50002 -> 50001 on weekdays only
        with pytest.raises(NoRouteFound, match="2024-06-15"):
            await RouteSearchService(seeded_store).search_routes(
                "50002", "50001", date(2024, 6, 15)
            )

    async def test_no_service_on_date(self, seeded_store: StoreAdapter) -> None:
        with pytest.raises(NoRouteFound, match="2025-01-06"):
            await RouteSearchService(seeded_store).search_routes(
                "50001", "50003", date(2025, 1, 6)
            )

    async def test_each_table_read_once_per_search(self, seeded_store: StoreAdapter) -> None:
        backend = seeded_store.backend

        results = await RouteSearchService(seeded_store).search_routes(
            "50001", "50002", date(2024, 6, 14)
        )

        assert results[0].calendar is not None
        for table in ("trips", "routes", "calendar", "calendar_dates"):
            assert len(backend.calls_for("batch_get", table)) == 1, table
        assert [call.size for call in backend.calls_for("batch_get", "calendar")] == [2]

    async def test_optional_filters_accepted(self, seeded_store: StoreAdapter) -> None:
        results = await RouteSearchService(seeded_store).search_routes(
            "50001",
            "50003",
            date(2024, 6, 14),
            inbound_date=date(2024, 6, 20),
            wheelchair_seating=True,
        )

        assert [result.trip_id for result in results] == ["trip-001-001"]


class TestStops:
    async def test_search_stops_filters_case_insensitively(
        self, seeded_store: StoreAdapter
    ) -> None:
        stops = await RouteSearchService(seeded_store).search_stops("STATION")

        assert [stop["stop_name"] for stop in stops] == [
            "Burrard Station",
            "Granville Station",
            "Waterfront Station",
        ]

    async def test_search_stops_substring(self, seeded_store: StoreAdapter) -> None:
        stops = await RouteSearchService(seeded_store).search_stops("ville")

        assert [stop["stop_id"] for stop in stops] == ["50003"]

    async def test_search_stops_without_filter(self, seeded_store: StoreAdapter) -> None:
        assert len(await RouteSearchService(seeded_store).search_stops()) == 3

    async def test_get_stop(self, seeded_store: StoreAdapter) -> None:
        service = RouteSearchService(seeded_store)

        assert (await service.get_stop("50002"))["stop_name"] == "Burrard Station"
        assert await service.get_stop("99999") is None
