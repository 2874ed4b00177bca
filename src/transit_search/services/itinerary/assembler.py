"""Itinerary assembly: trip, route, calendar and stop-time sequence per trip."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from transit_search.logging import get_logger
from transit_search.services.itinerary.calendar import CalendarResolver, ServiceRows
from transit_search.store import gather_bounded
from transit_search.store.schema import ROUTES, STOP_TIMES, TRIPS

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from datetime import date

    from transit_search.store import StoreAdapter
    from transit_search.store.base import Item

logger = get_logger(__name__)


@dataclass
class ItineraryResult:
    """One trip matching a search, with everything needed to display it."""

    trip: Item
    route: Item | None = None
    calendar: Item | None = None
    service_exception: Item | None = None
    itinerary: list[Item] = field(default_factory=list)

    @property
    def trip_id(self) -> str:
        return self.trip["trip_id"]

    def stop_time_at(self, stop_id: str) -> Item | None:
        """First stop-time of the itinerary at `stop_id`."""
        for stop_time in self.itinerary:
            if stop_time.get("stop_id") == stop_id:
                return stop_time
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "route": self.route,
            "trip": self.trip,
            "service_exception": self.service_exception,
            "calendar": self.calendar,
            "itinerary": self.itinerary,
        }


class ItineraryAssembler:
    """Builds ItineraryResults for a set of trips on a service date."""

    def __init__(self, store: StoreAdapter) -> None:
        self._store = store
        self._calendar = CalendarResolver(store)

    async def fetch_itinerary(self, trip_id: str) -> list[Item]:
        """All stop-times of a trip, ordered by stop_sequence."""
        stop_times = await self._store.query(STOP_TIMES, trip_id)
        return sorted(stop_times, key=lambda row: int(row["stop_sequence"]))

    async def assemble(
        self,
        trip_ids: Sequence[str],
        service_date: date,
        trips: Mapping[str, Item] | None = None,
        service_rows: ServiceRows | None = None,
    ) -> list[ItineraryResult]:
        """Assemble one result per trip id, in the order given.

        `trips` and `service_rows` may carry rows the caller already fetched
        (the latter as returned by `CalendarResolver.fetch_service_rows` for
        `service_date`); they are not fetched again. Trip ids with no trip
        row are skipped.
        """
        trip_ids = list(dict.fromkeys(trip_ids))
        if not trip_ids:
            return []

        trip_rows, itineraries = await asyncio.gather(
            self._fetch_trips(trip_ids, trips),
            gather_bounded(
                (self.fetch_itinerary(trip_id) for trip_id in trip_ids),
                self._store.limits.read_max_concurrency,
            ),
        )

        missing = [trip_id for trip_id in trip_ids if trip_id not in trip_rows]
        if missing:
            logger.warning(
                "Skipping trips with no trip row", trip_ids=missing[:20], count=len(missing)
            )

        found = [trip_rows[trip_id] for trip_id in trip_ids if trip_id in trip_rows]
        route_ids = list(dict.fromkeys(trip["route_id"] for trip in found if trip.get("route_id")))
        service_ids = list(
            dict.fromkeys(trip["service_id"] for trip in found if trip.get("service_id"))
        )

        routes, (calendars, exceptions) = await asyncio.gather(
            self._store.batch_get(ROUTES, [(route_id,) for route_id in route_ids]),
            self._service_rows(service_ids, service_date, service_rows),
        )

        itinerary_by_trip = dict(zip(trip_ids, itineraries))
        results = [
            ItineraryResult(
                trip=trip,
                route=routes.get((trip.get("route_id"),)),
                calendar=calendars.get(trip.get("service_id", "")),
                service_exception=exceptions.get(trip.get("service_id", "")),
                itinerary=itinerary_by_trip[trip["trip_id"]],
            )
            for trip in found
        ]
        logger.debug("Assembled itineraries", requested=len(trip_ids), assembled=len(results))
        return results

    async def _service_rows(
        self, service_ids: list[str], service_date: date, known: ServiceRows | None
    ) -> ServiceRows:
        if known is not None:
            return known
        return await self._calendar.fetch_service_rows(service_ids, service_date)

    async def _fetch_trips(
        self, trip_ids: list[str], known: Mapping[str, Item] | None
    ) -> dict[str, Item]:
        known = dict(known or {})
        wanted = [trip_id for trip_id in trip_ids if trip_id not in known]
        if wanted:
            fetched = await self._store.batch_get(TRIPS, [(trip_id,) for trip_id in wanted])
            known.update({key[0]: row for key, row in fetched.items()})
        return known
