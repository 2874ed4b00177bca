"""Tests for StopTripCorrelator - directional trip discovery."""

from __future__ import annotations

import pytest

from transit_search.services.itinerary.correlator import NoRouteFound, StopTripCorrelator
from transit_search.store import InMemoryBackend, StoreAdapter


def _stop_time(trip_id: str, stop_id: str, sequence: int, time: str = "08:00:00") -> dict:
    return {
        "trip_id": trip_id,
        "stop_id": stop_id,
        "stop_sequence": sequence,
        "arrival_time": time,
        "departure_time": time,
        "pickup_type": "0",
    }


@pytest.fixture
async def correlator(store: StoreAdapter) -> StopTripCorrelator:
    await store.batch_write(
        "stop_times",
        [
            _stop_time("T", "A", 3),
            _stop_time("T", "B", 7),
            _stop_time("U", "B", 1),
            _stop_time("U", "A", 2),
            # sequence 9 before 10 must compare numerically
            _stop_time("V", "A", 9),
            _stop_time("V", "B", 10),
            _stop_time("W", "C", 1),
        ],
    )
    return StopTripCorrelator(store)


class TestFindDirectedTrips:
    async def test_origin_before_destination(self, correlator: StopTripCorrelator) -> None:
        trip_ids = await correlator.find_directed_trips("A", "B")

        assert set(trip_ids) == {"T", "V"}

    async def test_reverse_direction(self, correlator: StopTripCorrelator) -> None:
        assert await correlator.find_directed_trips("B", "A") == ["U"]

    async def test_no_common_trip_raises(self, correlator: StopTripCorrelator) -> None:
        with pytest.raises(NoRouteFound) as exc_info:
            await correlator.find_directed_trips("A", "C")

        assert exc_info.value.origin_stop_id == "A"
        assert exc_info.value.destination_stop_id == "C"

    async def test_unknown_stop_raises(self, correlator: StopTripCorrelator) -> None:
        with pytest.raises(NoRouteFound):
            await correlator.find_directed_trips("A", "nowhere")

    async def test_same_stop_raises(self, correlator: StopTripCorrelator) -> None:
        with pytest.raises(NoRouteFound):
            await correlator.find_directed_trips("A", "A")

    async def test_queries_index_with_projection(
        self, correlator: StopTripCorrelator, memory_backend: InMemoryBackend
    ) -> None:
        memory_backend.reset_calls()

        rows = await correlator.stop_times_at("A")

        assert len(memory_backend.calls_for("query", "stop_times")) == 1
        assert set(rows[0]) == {
            "trip_id",
            "stop_id",
            "stop_sequence",
            "arrival_time",
            "departure_time",
        }

    async def test_string_sequences_compared_numerically(self, store: StoreAdapter) -> None:
        await store.batch_write(
            "stop_times",
            [
                {"trip_id": "X", "stop_id": "P", "stop_sequence": "9"},
                {"trip_id": "X", "stop_id": "Q", "stop_sequence": "10"},
            ],
        )

        assert await StopTripCorrelator(store).find_directed_trips("P", "Q") == ["X"]
