"""Tests for GtfsParser - CSV structure validation and streaming."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from transit_search.services.gtfs_static.parser import GtfsParser, ParseError
from transit_search.services.gtfs_static.reader import GtfsFeedReader

from .fixtures.gtfs_fixture import write_gtfs_dir

if TYPE_CHECKING:
    from pathlib import Path


def _parse(path: Path, filename: str, **overrides: str) -> list[dict[str, str]]:
    reader = GtfsFeedReader(write_gtfs_dir(path, **overrides))
    return list(GtfsParser(reader).parse_file(filename))


class TestGtfsParser:
    """Tests for CSV parsing and column validation."""

    def test_parse_stops_yields_rows(self, tmp_path: Path) -> None:
        rows = _parse(tmp_path, "stops.txt")

        assert len(rows) == 3
        assert rows[0]["stop_id"] == "50001"
        assert rows[0]["stop_name"] == "Waterfront Station"

    def test_parse_stop_times_yields_rows(self, tmp_path: Path) -> None:
        rows = _parse(tmp_path, "stop_times.txt")

        assert len(rows) == 10
        assert rows[0]["trip_id"] == "trip-001-001"
        assert rows[0]["arrival_time"] == "06:40:00"

    def test_parse_calendar_dates(self, tmp_path: Path) -> None:
        rows = _parse(tmp_path, "calendar_dates.txt")

        assert rows == [
            {"service_id": "WD", "date": "20240701", "exception_type": "2"},
            {"service_id": "WE", "date": "20240701", "exception_type": "1"},
        ]

    def test_is_a_generator(self, tmp_path: Path) -> None:
        reader = GtfsFeedReader(write_gtfs_dir(tmp_path))
        rows = GtfsParser(reader).parse_file("stops.txt")

        assert next(rows)["stop_id"] == "50001"
        rows.close()

    def test_header_and_values_trimmed(self, tmp_path: Path) -> None:
        rows = _parse(tmp_path, "stops.txt", stops=" stop_id , stop_name \n 50001 ,  Main St  \n")

        assert rows == [{"stop_id": "50001", "stop_name": "Main St"}]

    def test_bom_is_stripped_from_header(self, tmp_path: Path) -> None:
        rows = _parse(tmp_path, "stops.txt", stops="﻿stop_id,stop_name\n1,A\n")

        assert rows[0]["stop_id"] == "1"

    def test_extra_columns_kept_verbatim(self, tmp_path: Path) -> None:
        rows = _parse(tmp_path, "stops.txt", stops="stop_id,platform_code,x_custom\n1,2B,yes\n")

        assert rows == [{"stop_id": "1", "platform_code": "2B", "x_custom": "yes"}]

    def test_short_row_padded(self, tmp_path: Path) -> None:
        rows = _parse(tmp_path, "stops.txt", stops="stop_id,stop_name,zone_id\n1,A\n")

        assert rows == [{"stop_id": "1", "stop_name": "A", "zone_id": ""}]

    def test_blank_lines_skipped(self, tmp_path: Path) -> None:
        rows = _parse(tmp_path, "stops.txt", stops="stop_id,stop_name\n1,A\n\n2,B\n")

        assert [row["stop_id"] for row in rows] == ["1", "2"]

    def test_quoted_field_with_comma(self, tmp_path: Path) -> None:
        rows = _parse(tmp_path, "stops.txt", stops='stop_id,stop_name\n1,"Main St, Bay 2"\n')

        assert rows[0]["stop_name"] == "Main St, Bay 2"

    def test_long_row_raises_with_line(self, tmp_path: Path) -> None:
        with pytest.raises(ParseError, match="stops.txt:3") as exc_info:
            _parse(tmp_path, "stops.txt", stops="stop_id,stop_name\n1,A\n2,B,extra\n")

        assert exc_info.value.filename == "stops.txt"
        assert exc_info.value.line == 3

    def test_missing_required_column_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ParseError, match="stop_sequence"):
            _parse(
                tmp_path,
                "stop_times.txt",
                stop_times="trip_id,stop_id,arrival_time\nT1,1,08:00:00\n",
            )

    def test_empty_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ParseError, match="empty file"):
            _parse(tmp_path, "routes.txt", routes="")

    def test_header_only_parses_zero_rows(self, tmp_path: Path) -> None:
        assert _parse(tmp_path, "routes.txt", routes="route_id,route_short_name\n") == []

    def test_unterminated_quote_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ParseError):
            _parse(tmp_path, "stops.txt", stops='stop_id,stop_name\n1,"unterminated\n')
