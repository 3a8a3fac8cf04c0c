"""Tests for calendar and timestamp helpers."""
from datetime import date, datetime

import pytest

from asanadw.dates import format_timestamp, last_day_of_month, parse_date, parse_timestamp


class TestLastDayOfMonth:
    @pytest.mark.parametrize(
        "year, month, expected",
        [
            (2025, 1, date(2025, 1, 31)),
            (2025, 2, date(2025, 2, 28)),
            (2024, 2, date(2024, 2, 29)),
            (2025, 4, date(2025, 4, 30)),
            (2025, 12, date(2025, 12, 31)),
        ],
    )
    def test_last_day(self, year, month, expected):
        assert last_day_of_month(year, month) == expected


class TestTimestamps:
    def test_parse_z_suffix(self):
        assert parse_timestamp("2025-01-15T10:00:00.000Z") == datetime(2025, 1, 15, 10, 0)

    def test_parse_missing(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    def test_parse_date(self):
        assert parse_date("2025-01-15") == date(2025, 1, 15)
        assert parse_date("not a date") is None

    def test_format(self):
        assert format_timestamp(datetime(2025, 1, 2, 3, 4, 5)) == "2025-01-02T03:04:05.000Z"
