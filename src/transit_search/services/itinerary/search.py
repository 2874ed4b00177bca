"""Route and stop search: the query side of the service."""

from __future__ import annotations

from typing import TYPE_CHECKING

from transit_search.logging import get_logger
from transit_search.services.gtfs_static.normalizer import TimeParseError, parse_gtfs_time
from transit_search.services.itinerary.assembler import ItineraryAssembler, ItineraryResult
from transit_search.services.itinerary.calendar import CalendarResolver, running_services
from transit_search.services.itinerary.correlator import NoRouteFound, StopTripCorrelator
from transit_search.store.schema import DEFAULT_STOP_INDEX, STOPS, TRIPS

if TYPE_CHECKING:
    from datetime import date

    from transit_search.store import StoreAdapter
    from transit_search.store.base import Item

logger = get_logger(__name__)

# Results with no usable origin time sort after everything else
_UNTIMED = float("inf")


def departure_seconds(result: ItineraryResult, stop_id: str) -> float:
    """Departure (or arrival) time at `stop_id` in seconds past midnight."""
    stop_time = result.stop_time_at(stop_id)
    if stop_time is None:
        return _UNTIMED
    value = stop_time.get("departure_time") or stop_time.get("arrival_time") or ""
    try:
        return parse_gtfs_time(value)
    except TimeParseError:
        return _UNTIMED


class RouteSearchService:
    """Answers route searches between two stops on a date, and stop lookups."""

    def __init__(self, store: StoreAdapter, stop_index: str = DEFAULT_STOP_INDEX) -> None:
        self._store = store
        self.correlator = StopTripCorrelator(store, stop_index)
        self.calendar = CalendarResolver(store)
        self.assembler = ItineraryAssembler(store)

    async def search_routes(
        self,
        origin_stop_id: str,
        destination_stop_id: str,
        outbound_date: date,
        inbound_date: date | None = None,
        wheelchair_seating: bool | None = None,
    ) -> list[ItineraryResult]:
        """Trips from origin to destination running on `outbound_date`.

        Results are ordered by departure time at the origin.
        `inbound_date` and `wheelchair_seating` are accepted but not yet
        applied.

        Raises:
            NoRouteFound: If no trip survives correlation and calendar checks.
        """
        logger.info(
            "Searching routes",
            origin_stop_id=origin_stop_id,
            destination_stop_id=destination_stop_id,
            outbound_date=outbound_date.isoformat(),
            inbound_date=inbound_date.isoformat() if inbound_date else None,
            wheelchair_seating=wheelchair_seating,
        )

        trip_ids = await self.correlator.find_directed_trips(origin_stop_id, destination_stop_id)

        fetched = await self._store.batch_get(TRIPS, [(trip_id,) for trip_id in trip_ids])
        trips = {key[0]: row for key, row in fetched.items()}
        if not trips:
            raise NoRouteFound(
                origin_stop_id, destination_stop_id, "matching trips have no trip row"
            )

        service_ids = {trip["service_id"] for trip in trips.values() if trip.get("service_id")}
        # One read of calendar and calendar_dates serves both the validity
        # check and the assembled results
        service_rows = await self.calendar.fetch_service_rows(service_ids, outbound_date)
        valid_services = running_services(service_ids, *service_rows, outbound_date)

        running = [
            trip_id
            for trip_id in trip_ids
            if trip_id in trips and trips[trip_id].get("service_id") in valid_services
        ]
        if not running:
            raise NoRouteFound(
                origin_stop_id,
                destination_stop_id,
                f"no matching trip runs on {outbound_date.isoformat()}",
            )

        results = await self.assembler.assemble(
            running, outbound_date, trips=trips, service_rows=service_rows
        )
        if not results:
            raise NoRouteFound(
                origin_stop_id, destination_stop_id, "no itinerary could be assembled"
            )

        results.sort(key=lambda result: (departure_seconds(result, origin_stop_id), result.trip_id))
        logger.info(
            "Route search complete",
            origin_stop_id=origin_stop_id,
            destination_stop_id=destination_stop_id,
            candidate_trips=len(trip_ids),
            results=len(results),
        )
        return results

    async def search_stops(self, filter_text: str | None = None) -> list[Item]:
        """Stops whose name contains `filter_text` (case-insensitive), by name."""
        stops = await self._store.scan(STOPS)
        if filter_text:
            needle = filter_text.casefold()
            stops = [stop for stop in stops if needle in str(stop.get("stop_name", "")).casefold()]
        return sorted(stops, key=lambda stop: (str(stop.get("stop_name", "")), stop["stop_id"]))

    async def get_stop(self, stop_id: str) -> Item | None:
        return await self._store.get(STOPS, stop_id)
