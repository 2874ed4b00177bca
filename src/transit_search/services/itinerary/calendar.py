"""Service calendar resolution for a travel date."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from transit_search.logging import get_logger
from transit_search.services.gtfs_static.normalizer import format_gtfs_date, parse_gtfs_date
from transit_search.store.schema import CALENDAR, CALENDAR_DATES

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from datetime import date

    from transit_search.store import StoreAdapter

logger = get_logger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

SERVICE_ADDED = "1"
SERVICE_REMOVED = "2"

# (calendar rows, exception rows for one date), both keyed by service id
ServiceRows = tuple[dict[str, dict[str, Any]], dict[str, dict[str, Any]]]


def calendar_covers(calendar: Mapping[str, Any], travel_date: date) -> bool:
    """Whether a calendar row runs on `travel_date`.

    The date window is inclusive. The weekday flag is only checked when
    the row carries that day's column.
    """
    try:
        start = parse_gtfs_date(str(calendar.get("start_date", "")))
        end = parse_gtfs_date(str(calendar.get("end_date", "")))
    except ValueError:
        logger.warning(
            "Calendar row has an invalid date window",
            service_id=calendar.get("service_id"),
            start_date=calendar.get("start_date"),
            end_date=calendar.get("end_date"),
        )
        return False

    if not start <= travel_date <= end:
        return False

    weekday = WEEKDAYS[travel_date.weekday()]
    if weekday in calendar:
        return str(calendar[weekday]).strip() == "1"
    return True


def apply_exception(runs: bool, exception: Mapping[str, Any] | None) -> bool:
    if exception is None:
        return runs
    exception_type = str(exception.get("exception_type", "")).strip()
    if exception_type == SERVICE_REMOVED:
        return False
    if exception_type == SERVICE_ADDED:
        return True
    return runs


def running_services(
    service_ids: Iterable[str],
    calendars: Mapping[str, Mapping[str, Any]],
    exceptions: Mapping[str, Mapping[str, Any]],
    travel_date: date,
) -> set[str]:
    """Service ids that run on `travel_date`, given already fetched rows."""
    valid: set[str] = set()
    for service_id in service_ids:
        calendar = calendars.get(service_id)
        runs = calendar is not None and calendar_covers(calendar, travel_date)
        if apply_exception(runs, exceptions.get(service_id)):
            valid.add(service_id)
    return valid


class CalendarResolver:
    """Decides which service ids run on a given date."""

    def __init__(self, store: StoreAdapter) -> None:
        self._store = store

    async def fetch_service_rows(
        self, service_ids: Iterable[str], travel_date: date
    ) -> ServiceRows:
        """Calendar rows and that date's exception rows, keyed by service id."""
        ids = list(dict.fromkeys(service_ids))
        if not ids:
            return {}, {}

        day = format_gtfs_date(travel_date)
        calendars, exceptions = await asyncio.gather(
            self._store.batch_get(CALENDAR, [(service_id,) for service_id in ids]),
            self._store.batch_get(CALENDAR_DATES, [(service_id, day) for service_id in ids]),
        )
        return (
            {key[0]: row for key, row in calendars.items()},
            {key[0]: row for key, row in exceptions.items()},
        )

    async def resolve_service_validity(
        self, service_ids: Iterable[str], travel_date: date
    ) -> set[str]:
        """Service ids that run on `travel_date`.

        Exception rows for the date override the calendar: type 2 removes
        the service, type 1 adds it even without a calendar row.
        """
        ids = list(dict.fromkeys(service_ids))
        calendars, exceptions = await self.fetch_service_rows(ids, travel_date)

        valid = running_services(ids, calendars, exceptions, travel_date)

        logger.debug(
            "Resolved service validity",
            travel_date=travel_date.isoformat(),
            requested=len(ids),
            calendars=len(calendars),
            exceptions=len(exceptions),
            valid=len(valid),
        )
        return valid
