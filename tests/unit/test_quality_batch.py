"""Tests for carbon_collector.quality.batch."""

from __future__ import annotations

from datetime import date

from carbon_collector.quality.batch import (
    RECOMMEND_AUDIT,
    RECOMMEND_DEDUP,
    RECOMMEND_PAUSE,
    assess_batch_quality,
    check_completeness,
    check_duplicates,
    compare_with_prior,
    validate_price_row,
)

TODAY = date(2024, 6, 1)


# --- validate_price_row ---


class TestValidatePriceRow:
    def test_clean_row(self, make_record):
        check = validate_price_row(make_record(), today=TODAY)
        assert check.passed
        assert check.score == 100
        assert check.warnings == []

    def test_invalid_date_format(self, make_record):
        check = validate_price_row(make_record(date="15/01/2024"), today=TODAY)
        assert check.errors == ["Invalid date format"]
        assert check.score == 70

    def test_future_date(self, make_record):
        check = validate_price_row(make_record(date="2024-06-02"), today=TODAY)
        assert check.errors == ["Date cannot be in the future"]
        assert check.score == 75

    def test_unknown_market(self, make_record):
        check = validate_price_row(make_record(market_code="XYZ"), today=TODAY)
        assert check.errors == ["Invalid market code"]

    def test_currency_mismatch_is_warning(self, make_record):
        check = validate_price_row(make_record(currency="USD"), today=TODAY)
        assert check.passed
        assert check.warnings == ["Currency mismatch: expected CNY for CEA"]
        assert check.score == 90

    def test_extreme_change_against_latest(self, make_record):
        previous = [
            make_record(date="2024-01-10", price=10.0),
            make_record(date="2024-01-14", price=50.0),
        ]
        check = validate_price_row(make_record(price=80.0), previous, today=TODAY)
        assert check.warnings == ["Extreme price change: 60.0% from previous day"]
        assert check.score == 85

    def test_large_change(self, make_record):
        previous = [make_record(date="2024-01-14", price=50.0)]
        check = validate_price_row(make_record(price=62.0), previous, today=TODAY)
        assert check.warnings == ["Large price change: 24.0% from previous day"]

    def test_other_instruments_ignored(self, make_record):
        previous = [make_record(instrument_code="OTHER", price=10.0)]
        assert validate_price_row(make_record(), previous, today=TODAY).warnings == []

    def test_volume_checks(self, make_record):
        assert validate_price_row(make_record(volume=0.0), today=TODAY).warnings == [
            "Zero volume detected"
        ]
        assert validate_price_row(make_record(volume=2e7), today=TODAY).warnings == [
            "Unusually high volume"
        ]

    def test_market_band(self, make_record):
        check = validate_price_row(make_record(price=250.0), today=TODAY)
        assert "CEA price outside normal range (10-200 CNY)" in check.warnings

    def test_missing_source_url(self, make_record):
        check = validate_price_row(make_record(source_url="not a url"), today=TODAY)
        assert check.warnings == ["Invalid or missing source URL"]


# --- duplicates / completeness ---


class TestDuplicates:
    def test_one_notice_per_repeat(self, make_record):
        records = [make_record(), make_record(), make_record()]
        assert check_duplicates(records) == ["Duplicate entry: CEA-CEA-2024-01-15"] * 2

    def test_distinct_keys(self, make_record):
        records = [make_record(), make_record(instrument_code="CEA-B")]
        assert check_duplicates(records) == []


class TestCompleteness:
    def test_missing_weekdays_only(self, make_record):
        records = [make_record(date="2024-01-12")]  # Friday
        issues = check_completeness(records, date(2024, 1, 12), date(2024, 1, 15))
        assert issues == ["Missing data for CEA-CEA on 2024-01-15"]


# --- assess_batch_quality ---


class TestAssessBatch:
    def test_empty_batch(self):
        result = assess_batch_quality([], today=TODAY)
        assert result.overall_score == 0.0
        assert RECOMMEND_AUDIT in result.recommendations

    def test_whole_batch_is_the_comparison_pool(self, make_record):
        # Every row is compared with the latest row, so the earlier rows are flagged
        records = [
            make_record(date="2024-01-10", price=30.0),
            make_record(date="2024-01-11", price=31.5),
            make_record(date="2024-01-12", price=65.0),
        ]
        result = assess_batch_quality(records, today=TODAY)
        assert result.overall_score == 90.0
        extreme = [i for i in result.issues if "Extreme price change" in i]
        assert len(extreme) == 2
        assert all(i.startswith("warning: ") for i in extreme)

    def test_duplicates_recommend_dedup(self, make_record):
        result = assess_batch_quality([make_record(), make_record()], today=TODAY)
        assert result.issues[0] == "Duplicate entry: CEA-CEA-2024-01-15"
        assert RECOMMEND_DEDUP in result.recommendations

    def test_error_rate_recommends_pause(self, make_record):
        records = [make_record(date=f"2024-07-{d:02d}") for d in range(1, 4)]
        result = assess_batch_quality(records, today=TODAY)
        assert RECOMMEND_PAUSE in result.recommendations
        assert result.issues.count("error: Date cannot be in the future") == 3

    def test_low_scoring_failed_rows_excluded_from_mean(self, make_record):
        bad = make_record(date="bad", price=-1.0, market_code="XYZ", currency="USD")
        result = assess_batch_quality([make_record(), bad], today=TODAY)
        assert result.overall_score == 100.0

    def test_issues_capped(self, make_record):
        records = [make_record(source_url="") for _ in range(150)]
        assert len(assess_batch_quality(records, today=TODAY).issues) == 100


# --- compare_with_prior ---


class TestCompareWithPrior:
    def test_already_imported(self, make_record):
        warnings = compare_with_prior([make_record()], [make_record(price=1.0)])
        assert warnings == ["Already imported: CEA-CEA-2024-01-15"]

    def test_change_vs_latest_earlier_stored_row(self, make_record):
        prior = [
            make_record(date="2024-01-10", price=100.0),
            make_record(date="2024-01-12", price=50.0),
        ]
        warnings = compare_with_prior([make_record(price=80.0)], prior)
        assert warnings == ["Extreme price change 60.0% vs stored 2024-01-12 on 2024-01-15 (CEA)"]

    def test_small_change_silent(self, make_record):
        prior = [make_record(date="2024-01-12", price=70.0)]
        assert compare_with_prior([make_record(price=71.0)], prior) == []

    def test_later_prior_rows_ignored(self, make_record):
        prior = [make_record(date="2024-01-20", price=10.0)]
        assert compare_with_prior([make_record()], prior) == []
