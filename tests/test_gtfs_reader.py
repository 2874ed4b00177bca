"""Tests for GtfsFeedReader - required files and resource discovery."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from transit_search.services.gtfs_static.parser import ParseError
from transit_search.services.gtfs_static.reader import (
    FEED_RESOURCES,
    GtfsFeedReader,
    MissingRequiredFileError,
)

from .fixtures.gtfs_fixture import write_gtfs_dir

if TYPE_CHECKING:
    from pathlib import Path


class TestGtfsFeedReader:
    """Tests for feed directory validation."""

    def test_valid_directory_opens(self, tmp_path: Path) -> None:
        reader = GtfsFeedReader(write_gtfs_dir(tmp_path))

        assert reader.has_file("stops.txt")
        assert "stop_times.txt" in reader.list_files()

    def test_present_resources_maps_all_seven(self, tmp_path: Path) -> None:
        reader = GtfsFeedReader(write_gtfs_dir(tmp_path))

        assert reader.present_resources() == FEED_RESOURCES

    def test_missing_required_file_raises(self, tmp_path: Path) -> None:
        write_gtfs_dir(tmp_path, exclude_files={"stops.txt"})

        with pytest.raises(MissingRequiredFileError, match="stops.txt"):
            GtfsFeedReader(tmp_path)

    def test_missing_file_is_a_parse_error(self, tmp_path: Path) -> None:
        write_gtfs_dir(tmp_path, exclude_files={"trips.txt"})

        with pytest.raises(ParseError):
            GtfsFeedReader(tmp_path)

    def test_calendar_dates_only_feed_accepted(self, tmp_path: Path) -> None:
        write_gtfs_dir(tmp_path, exclude_files={"calendar.txt", "agency.txt"})

        resources = GtfsFeedReader(tmp_path).present_resources()

        assert "calendar.txt" not in resources
        assert resources["calendar_dates.txt"] == "calendar_dates"

    def test_no_calendar_at_all_raises(self, tmp_path: Path) -> None:
        write_gtfs_dir(tmp_path, exclude_files={"calendar.txt", "calendar_dates.txt"})

        with pytest.raises(MissingRequiredFileError, match="calendar"):
            GtfsFeedReader(tmp_path)

    def test_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(MissingRequiredFileError, match="not found"):
            GtfsFeedReader(tmp_path / "nope")

    def test_open_file_returns_text(self, tmp_path: Path) -> None:
        reader = GtfsFeedReader(write_gtfs_dir(tmp_path))

        with reader.open_file("agency.txt") as f:
            assert f.readline().startswith("agency_id")

    def test_extra_files_ignored(self, tmp_path: Path) -> None:
        write_gtfs_dir(tmp_path, extra_files={"shapes.txt": "shape_id\n"})

        reader = GtfsFeedReader(tmp_path)

        assert reader.has_file("shapes.txt")
        assert "shapes.txt" not in reader.present_resources()
