"""GTFS staging directory reader - validates and opens feed resources."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from transit_search.logging import get_logger
from transit_search.services.gtfs_static.parser import ParseError
from transit_search.store import schema

if TYPE_CHECKING:
    import io

logger = get_logger(__name__)

# Feed resource file -> table it is written to
FEED_RESOURCES: dict[str, str] = {
    "agency.txt": schema.AGENCY,
    "calendar.txt": schema.CALENDAR,
    "calendar_dates.txt": schema.CALENDAR_DATES,
    "routes.txt": schema.ROUTES,
    "stop_times.txt": schema.STOP_TIMES,
    "stops.txt": schema.STOPS,
    "trips.txt": schema.TRIPS,
}

REQUIRED_FILES = {"stops.txt", "routes.txt", "trips.txt", "stop_times.txt"}

# GTFS requires at least one of these two
CALENDAR_FILES = {"calendar.txt", "calendar_dates.txt"}


class MissingRequiredFileError(ParseError):
    """Raised when a required GTFS file is missing from the feed."""


class GtfsFeedReader:
    """Opens the resources of one extracted feed."""

    def __init__(self, path: str | Path) -> None:
        """Initialize reader over an extracted feed directory.

        Raises:
            MissingRequiredFileError: If the directory or required files are missing.
        """
        self.path = Path(path)
        if not self.path.is_dir():
            msg = f"Feed directory not found: {self.path}"
            raise MissingRequiredFileError(msg)
        self._validate_required_files()

    def _validate_required_files(self) -> None:
        names = set(self.list_files())
        missing = REQUIRED_FILES - names
        if missing:
            msg = f"Missing required GTFS files: {sorted(missing)}"
            raise MissingRequiredFileError(msg)
        if not CALENDAR_FILES & names:
            msg = f"Missing GTFS calendar: one of {sorted(CALENDAR_FILES)} is required"
            raise MissingRequiredFileError(msg)

        logger.info(
            "GTFS feed validated",
            path=str(self.path),
            resources=sorted(names & FEED_RESOURCES.keys()),
            total_files=len(names),
        )

    def has_file(self, filename: str) -> bool:
        return (self.path / filename).is_file()

    def open_file(self, filename: str) -> io.TextIOWrapper:
        """Open a feed resource for text reading (BOM tolerant)."""
        return (self.path / filename).open(encoding="utf-8-sig", newline="")

    def list_files(self) -> list[str]:
        return sorted(entry.name for entry in self.path.iterdir() if entry.is_file())

    def present_resources(self) -> dict[str, str]:
        """Feed resources present in the directory, mapped to their tables."""
        return {name: table for name, table in FEED_RESOURCES.items() if self.has_file(name)}
