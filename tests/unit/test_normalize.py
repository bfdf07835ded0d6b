"""Tests for carbon_collector.collection.normalize."""

from datetime import date

import pytest

from carbon_collector.collection.normalize import (
    format_number,
    parse_date,
    parse_price,
    parse_volume,
    pick_field,
    within_window,
)


class TestParseDate:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2024-01-15", "2024-01-15"),
            ("2024/1/5", "2024-01-05"),
            ("01/15/2024", "2024-01-15"),
            ("1/5/24", "2024-01-05"),
            ("2024年1月15日", "2024-01-15"),
            ("2024-01-15T08:30:00Z", "2024-01-15"),
            ("2024-01-15 08:30", "2024-01-15"),
            (" 2024-01-15 ", "2024-01-15"),
            (date(2024, 2, 29), "2024-02-29"),
        ],
    )
    def test_accepted_formats(self, raw, expected):
        assert parse_date(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        ["13/01/2024", "01/32/2024", "2023-02-29", "2024-13-01", "not a date", "", None, 20240115],
    )
    def test_invalid_rejected_not_clamped(self, raw):
        assert parse_date(raw) is None

    def test_two_digit_year_before_min_year(self):
        # 99 maps to 1999, which is older than the default floor
        assert parse_date("12/31/99", min_year=2000) is None

    def test_min_year_enforced(self):
        assert parse_date("1998-05-01") is None
        assert parse_date("1998-05-01", min_year=1990) == "1998-05-01"


class TestParsePrice:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("70.50", 70.5),
            ("¥70.50", 70.5),
            ("$1,234.5", 1234.5),
            ("€ 80", 80.0),
            ("65.2元", 65.2),
            (31.5, 31.5),
            (30, 30.0),
        ],
    )
    def test_valid(self, raw, expected):
        assert parse_price(raw) == expected

    @pytest.mark.parametrize("raw", ["0", "-5", "abc", "", None, True, "nan", "inf"])
    def test_invalid(self, raw):
        assert parse_price(raw) is None


class TestParseVolume:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("1,250", 1250.0),
            ("12.5万", 125000.0),
            ("300吨", 300.0),
            ("500 tCO2e", 500.0),
            ("42t", 42.0),
            (0, 0.0),
        ],
    )
    def test_valid(self, raw, expected):
        assert parse_volume(raw) == expected

    @pytest.mark.parametrize("raw", ["-", "", "  ", None, "-10", "lots"])
    def test_missing_or_invalid(self, raw):
        assert parse_volume(raw) is None


class TestPickField:
    def test_first_parseable_candidate_wins(self):
        row = {"Date": "", "Trading_Date": "garbage", "auction_date": "2024-02-21"}
        assert pick_field(row, ("date", "Date", "Trading_Date", "auction_date"), parse_date) == "2024-02-21"

    def test_none_when_nothing_parses(self):
        assert pick_field({"price": "n/a"}, ("price",), parse_price) is None


class TestWithinWindow:
    def test_inclusive_bounds(self):
        target = date(2024, 1, 11)
        assert within_window("2024-01-08", target, 3)
        assert within_window("2024-01-14", target, 3)
        assert not within_window("2024-01-15", target, 3)

    def test_malformed_date(self):
        assert not within_window("2024/01/11", date(2024, 1, 11), 3)


class TestFormatNumber:
    def test_integral(self):
        assert format_number(30.0) == "30"

    def test_fractional(self):
        assert format_number(31.5) == "31.5"
