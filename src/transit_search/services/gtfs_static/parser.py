"""GTFS CSV parser with structural validation and streaming."""

from __future__ import annotations

import csv
from typing import TYPE_CHECKING

from transit_search.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator

    from transit_search.services.gtfs_static.reader import GtfsFeedReader

logger = get_logger(__name__)

# Columns each resource must carry: the natural keys of its table.
# agency.txt may omit agency_id in single-agency feeds.
REQUIRED_COLUMNS: dict[str, set[str]] = {
    "agency.txt": {"agency_name"},
    "calendar.txt": {"service_id", "start_date", "end_date"},
    "calendar_dates.txt": {"service_id", "date"},
    "routes.txt": {"route_id"},
    "stops.txt": {"stop_id"},
    "trips.txt": {"route_id", "service_id", "trip_id"},
    "stop_times.txt": {"trip_id", "stop_id", "stop_sequence"},
}


class ParseError(Exception):
    """Raised when a feed resource is structurally malformed."""

    def __init__(self, message: str, filename: str | None = None, line: int | None = None) -> None:
        self.filename = filename
        self.line = line
        location = ""
        if filename is not None:
            location = f"{filename}:{line}: " if line is not None else f"{filename}: "
        super().__init__(f"{location}{message}")


class GtfsParser:
    """Parses GTFS CSV files into raw row dicts, one row at a time."""

    def __init__(self, reader: GtfsFeedReader) -> None:
        self._reader = reader

    def parse_file(self, filename: str) -> Iterator[dict[str, str]]:
        """Parse a GTFS CSV file, yielding one dict per row.

        Column names become keys verbatim (surrounding whitespace
        trimmed); values are trimmed. Rows shorter than the header are
        padded with empty strings.

        Raises:
            ParseError: On an empty file, missing required columns, a row
                with more fields than the header, or invalid CSV.
        """
        with self._reader.open_file(filename) as text_io:
            csv_reader = csv.reader(text_io, strict=True)
            try:
                header = next(csv_reader, None)
                if header is None:
                    msg = "empty file, header row expected"
                    raise ParseError(msg, filename)

                columns = [name.strip() for name in header]
                missing = REQUIRED_COLUMNS.get(filename, set()) - set(columns)
                if missing:
                    msg = f"missing required columns {sorted(missing)}"
                    raise ParseError(msg, filename, 1)

                logger.debug("Parsing GTFS file", filename=filename, columns=columns)

                width = len(columns)
                for values in csv_reader:
                    if not values:
                        continue
                    if len(values) > width:
                        msg = f"row has {len(values)} fields, header has {width}"
                        raise ParseError(msg, filename, csv_reader.line_num)
                    if len(values) < width:
                        values = values + [""] * (width - len(values))
                    yield {name: value.strip() for name, value in zip(columns, values)}
            except csv.Error as exc:
                raise ParseError(str(exc), filename, csv_reader.line_num) from exc
