"""Tests for flexible date parsing and expiration helpers."""

from datetime import date, datetime

import pytest

from collectors.utils.dates import (
    ExpirationStatus,
    days_until_expiration,
    format_date,
    format_date_for_db,
    get_expiration_status,
    parse_flexible_date,
)

TODAY = date(2026, 6, 15)


class TestParseFlexibleDate:
    """parse_flexible_date accepts the four supported layouts."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2026-06-25", date(2026, 6, 25)),
            ("6/25/2026", date(2026, 6, 25)),
            ("06/05/2027", date(2027, 6, 5)),
            ("6/25/26", date(2026, 6, 25)),
            ("12/1/99", date(2099, 12, 1)),
            ("  2026-01-02  ", date(2026, 1, 2)),
        ],
    )
    def test_explicit_year_formats(self, raw, expected):
        assert parse_flexible_date(raw, today=TODAY) == expected

    def test_yearless_future_date_uses_current_year(self):
        assert parse_flexible_date("7/25", today=TODAY) == date(2026, 7, 25)

    def test_yearless_past_date_rolls_to_next_year(self):
        assert parse_flexible_date("3/1", today=TODAY) == date(2027, 3, 1)

    def test_yearless_today_stays_in_current_year(self):
        assert parse_flexible_date("6/15", today=TODAY) == TODAY

    def test_yearless_leap_day_finds_next_leap_year(self):
        assert parse_flexible_date("2/29", today=TODAY) == date(2028, 2, 29)

    @pytest.mark.parametrize(
        "raw",
        ["2026-02-30", "13/1", "2/30/2026", "0/10", "not a date", "", "   ", "2026/06/25"],
    )
    def test_invalid_input_returns_none(self, raw):
        """Impossible calendar dates never roll over into another month."""
        assert parse_flexible_date(raw, today=TODAY) is None

    def test_none_and_non_string_return_none(self):
        assert parse_flexible_date(None) is None
        assert parse_flexible_date(20260625) is None

    def test_defaults_today_to_local_date(self):
        result = parse_flexible_date("1/1")
        assert result is not None
        assert result >= date.today()


class TestFormatting:
    def test_format_date_for_db(self):
        assert format_date_for_db(date(2026, 6, 5)) == "2026-06-05"
        assert format_date_for_db(datetime(2026, 6, 5, 13, 30)) == "2026-06-05"
        assert format_date_for_db(None) is None

    def test_format_date_for_display(self):
        assert format_date("2025-07-25") == "Jul 25, 2025"
        assert format_date(date(2026, 1, 3)) == "Jan 3, 2026"
        assert format_date("2026-01-03T22:15:00+00:00") == "Jan 3, 2026"

    def test_format_date_bad_input_is_empty(self):
        assert format_date("garbage") == ""
        assert format_date(None) == ""


class TestExpiration:
    def test_days_until_expiration(self):
        assert days_until_expiration("2026-06-20", today=TODAY) == 5
        assert days_until_expiration("2026-06-10", today=TODAY) == -5
        assert days_until_expiration(TODAY, today=TODAY) == 0

    def test_days_until_expiration_without_date(self):
        assert days_until_expiration(None, today=TODAY) is None
        assert days_until_expiration("", today=TODAY) is None
        assert days_until_expiration("soon", today=TODAY) is None

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2026-06-14", ExpirationStatus.expired),
            ("2026-06-15", ExpirationStatus.warning),
            ("2026-06-22", ExpirationStatus.warning),
            ("2026-06-23", ExpirationStatus.soon),
            ("2026-07-15", ExpirationStatus.soon),
            ("2026-07-16", ExpirationStatus.current),
            (None, ExpirationStatus.unknown),
        ],
    )
    def test_get_expiration_status_buckets(self, value, expected):
        assert get_expiration_status(value, today=TODAY) == expected
