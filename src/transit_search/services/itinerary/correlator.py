"""Stop-trip correlation: which trips serve origin before destination."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from transit_search.logging import get_logger
from transit_search.store.schema import DEFAULT_STOP_INDEX, STOP_TIMES

if TYPE_CHECKING:
    from transit_search.store import StoreAdapter
    from transit_search.store.base import Item

logger = get_logger(__name__)

STOP_TIME_PROJECTION = (
    "trip_id",
    "stop_id",
    "stop_sequence",
    "arrival_time",
    "departure_time",
)


class NoRouteFound(Exception):
    """Raised when no trip connects the origin to the destination."""

    def __init__(self, origin_stop_id: str, destination_stop_id: str, reason: str = "") -> None:
        self.origin_stop_id = origin_stop_id
        self.destination_stop_id = destination_stop_id
        self.reason = reason or "no trip serves both stops in this direction"
        super().__init__(f"No route from {origin_stop_id} to {destination_stop_id}: {self.reason}")


class StopTripCorrelator:
    """Finds trips visiting the origin stop earlier than the destination stop."""

    def __init__(self, store: StoreAdapter, index_name: str = DEFAULT_STOP_INDEX) -> None:
        self._store = store
        self._index_name = index_name

    async def stop_times_at(self, stop_id: str) -> list[Item]:
        """Projected stop-time rows of every trip calling at `stop_id`."""
        return await self._store.query(
            STOP_TIMES,
            stop_id,
            index_name=self._index_name,
            projection=STOP_TIME_PROJECTION,
        )

    async def find_directed_trips(
        self, origin_stop_id: str, destination_stop_id: str
    ) -> list[str]:
        """Trip ids where the origin's stop_sequence precedes the destination's.

        Raises:
            NoRouteFound: If no such trip exists.
        """
        origin_rows, destination_rows = await asyncio.gather(
            self.stop_times_at(origin_stop_id),
            self.stop_times_at(destination_stop_id),
        )

        origin_sequence = {row["trip_id"]: int(row["stop_sequence"]) for row in origin_rows}

        trip_ids: list[str] = []
        for row in destination_rows:
            trip_id = row["trip_id"]
            departure = origin_sequence.get(trip_id)
            if departure is not None and departure < int(row["stop_sequence"]):
                trip_ids.append(trip_id)
        trip_ids = list(dict.fromkeys(trip_ids))

        logger.debug(
            "Correlated stops",
            origin_stop_id=origin_stop_id,
            destination_stop_id=destination_stop_id,
            origin_trips=len(origin_rows),
            destination_trips=len(destination_rows),
            directed_trips=len(trip_ids),
        )
        if not trip_ids:
            raise NoRouteFound(origin_stop_id, destination_stop_id)
        return trip_ids
