"""GTFS record normalizer - turns parsed rows into store records."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from transit_search.logging import get_logger
from transit_search.services.gtfs_static.parser import ParseError
from transit_search.services.gtfs_static.reader import FEED_RESOURCES
from transit_search.store.schema import build_feed_tables

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = get_logger(__name__)

# Columns stored as integers so that ordering is numeric
INTEGER_COLUMNS: dict[str, set[str]] = {
    "stop_times.txt": {"stop_sequence"},
}

_TABLES = build_feed_tables()

KEY_COLUMNS: dict[str, tuple[str, ...]] = {
    filename: _TABLES[table].key_attributes for filename, table in FEED_RESOURCES.items()
}


class TimeParseError(ValueError):
    """Raised when a GTFS time string cannot be parsed."""


class GtfsNormalizer:
    """Normalizes parsed GTFS rows into flat, keyed records.

    Field names are the feed's column names; no schema beyond the table
    keys is imposed.
    """

    def normalize(self, filename: str, rows: Iterable[dict[str, str]]) -> Iterator[dict[str, Any]]:
        """Yield one record per row of `filename`.

        Raises:
            ParseError: If a key value is empty or an integer column is not
                an integer. Line numbers count the header as line 1.
        """
        keys = KEY_COLUMNS.get(filename, ())
        integer_columns = INTEGER_COLUMNS.get(filename, set())

        for line, row in enumerate(rows, start=2):
            record: dict[str, Any] = dict(row)

            if filename == "agency.txt" and not record.get("agency_id"):
                # Single-agency feeds may leave agency_id out entirely
                record["agency_id"] = record.get("agency_name", "")

            for column in keys:
                if not record.get(column):
                    msg = f"empty key column {column!r}"
                    raise ParseError(msg, filename, line)

            for column in integer_columns:
                value = record.get(column, "")
                try:
                    record[column] = int(value)
                except ValueError as exc:
                    msg = f"{column}={value!r} is not an integer"
                    raise ParseError(msg, filename, line) from exc

            yield record


def parse_gtfs_time(time_str: str) -> int:
    """Parse a GTFS time string (HH:MM:SS) to seconds from midnight.

    Supports times >= 24:00:00 for trips spanning past midnight.

    Examples:
        "08:30:00" -> 30600
        "25:01:30" -> 90090

    Raises:
        TimeParseError: If the format is invalid.
    """
    time_str = time_str.strip()
    parts = time_str.split(":")
    if len(parts) != 3:
        msg = f"Invalid GTFS time format: {time_str!r} (expected HH:MM:SS)"
        raise TimeParseError(msg)

    try:
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = int(parts[2])
    except ValueError as exc:
        msg = f"Non-numeric components in GTFS time: {time_str!r}"
        raise TimeParseError(msg) from exc

    if minutes < 0 or minutes > 59 or seconds < 0 or seconds > 59:
        msg = f"Invalid minutes/seconds in GTFS time: {time_str!r}"
        raise TimeParseError(msg)

    if hours < 0:
        msg = f"Negative hours in GTFS time: {time_str!r}"
        raise TimeParseError(msg)

    return hours * 3600 + minutes * 60 + seconds


def parse_gtfs_date(value: str) -> date:
    """Parse a GTFS service date (YYYYMMDD).

    Raises:
        ValueError: If the value is not a valid YYYYMMDD date.
    """
    return datetime.strptime(value.strip(), "%Y%m%d").date()


def format_gtfs_date(value: date) -> str:
    return value.strftime("%Y%m%d")
