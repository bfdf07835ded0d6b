"""Row-level validation and batch assessment.

``assess_batch_quality`` validates each row against the *whole* batch as its
comparison pool, not only the rows dated before it. The row itself is in that
pool too. This means the earliest rows of a batch that ends with a jump are
the ones flagged for extreme change.
"""

from __future__ import annotations

import re
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date, timedelta
from urllib.parse import urlparse

from carbon_collector.core.models import (
    MARKET_CURRENCIES,
    BatchAssessment,
    MarketCode,
    PriceRecord,
    RowCheck,
)

_KNOWN_MARKETS = {m.value for m in MarketCode}
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

EXTREME_CHANGE_PERCENT = 50
LARGE_CHANGE_PERCENT = 20
HIGH_VOLUME = 10_000_000
MIN_COUNTED_SCORE = 60
LOW_QUALITY_SCORE = 70
MAX_ERROR_RATIO = 0.1
MAX_ISSUES = 100

# Market-specific plausibility bands: (low, high, message)
_MARKET_BANDS: dict[str, tuple[float, float, str]] = {
    "CEA": (10, 200, "CEA price outside normal range (10-200 CNY)"),
    "CDR": (100, 2000, "CDR price outside typical range (100-2000 USD)"),
}

RECOMMEND_AUDIT = "Data quality is low: audit the source and the collection pipeline"
RECOMMEND_DEDUP = "Duplicate rows present: check the deduplication logic"
RECOMMEND_PAUSE = "Error rate too high: pause auto-import and review manually"


def _is_valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme and parsed.netloc)


def _to_date(value: str) -> date | None:
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _key_text(record: PriceRecord) -> str:
    return f"{record.market_code}-{record.instrument_code}-{record.date}"


def _change_percent(current: float, previous: float) -> float | None:
    if previous <= 0:
        return None
    return abs((current - previous) / previous * 100)


def validate_price_row(
    row: PriceRecord,
    previous_rows: Sequence[PriceRecord] = (),
    today: date | None = None,
) -> RowCheck:
    """Validate a single row, comparing it to the latest same-instrument row."""
    today = today or date.today()
    errors: list[str] = []
    warnings: list[str] = []
    score = 100

    row_date = _to_date(row.date) if _ISO_DATE.match(row.date) else None
    if row_date is None:
        errors.append("Invalid date format")
        score -= 30

    if not row.price or row.price <= 0:
        errors.append("Invalid price value")
        score -= 30

    if row.market_code not in _KNOWN_MARKETS:
        errors.append("Invalid market code")
        score -= 20

    if row_date is not None and row_date > today:
        errors.append("Date cannot be in the future")
        score -= 25

    expected_currency = MARKET_CURRENCIES.get(row.market_code)
    if expected_currency is not None and row.currency != expected_currency:
        warnings.append(
            f"Currency mismatch: expected {expected_currency} for {row.market_code}"
        )
        score -= 10

    same_instrument = [
        r
        for r in previous_rows
        if r.market_code == row.market_code and r.instrument_code == row.instrument_code
    ]
    if same_instrument:
        latest = max(same_instrument, key=lambda r: r.date)
        change = _change_percent(row.price, latest.price)
        if change is not None and change > EXTREME_CHANGE_PERCENT:
            warnings.append(f"Extreme price change: {change:.1f}% from previous day")
            score -= 15
        elif change is not None and change > LARGE_CHANGE_PERCENT:
            warnings.append(f"Large price change: {change:.1f}% from previous day")
            score -= 5

    if row.volume is not None:
        if row.volume == 0:
            warnings.append("Zero volume detected")
            score -= 5
        elif row.volume > HIGH_VOLUME:
            warnings.append("Unusually high volume")
            score -= 5

    band = _MARKET_BANDS.get(row.market_code)
    if band is not None:
        low, high, message = band
        if row.price < low or row.price > high:
            warnings.append(message)
            score -= 10

    if not row.source_url or not _is_valid_url(row.source_url):
        warnings.append("Invalid or missing source URL")
        score -= 5

    return RowCheck(
        passed=not errors,
        errors=errors,
        warnings=warnings,
        score=max(0, score),
    )


def check_duplicates(records: Iterable[PriceRecord]) -> list[str]:
    """One notice per repeat of a (market, instrument, date) key."""
    notices: list[str] = []
    seen: set[tuple[str, str, str]] = set()
    for record in records:
        if record.key in seen:
            notices.append(f"Duplicate entry: {_key_text(record)}")
        seen.add(record.key)
    return notices


def check_completeness(
    records: Iterable[PriceRecord],
    start: date,
    end: date,
) -> list[str]:
    """Report weekdays in [start, end] with no row, per (market, instrument)."""
    dates_by_group: dict[str, set[str]] = defaultdict(set)
    for record in records:
        dates_by_group[f"{record.market_code}-{record.instrument_code}"].add(record.date)

    issues: list[str] = []
    for group, seen_dates in dates_by_group.items():
        day = start
        while day <= end:
            # Saturday=5, Sunday=6
            if day.weekday() < 5 and day.isoformat() not in seen_dates:
                issues.append(f"Missing data for {group} on {day.isoformat()}")
            day += timedelta(days=1)
    return issues


def assess_batch_quality(
    records: Sequence[PriceRecord],
    today: date | None = None,
) -> BatchAssessment:
    """Run row validation across the batch and summarize it.

    Row errors are reported as ``error: ...`` issues and row warnings as
    ``warning: ...`` issues, so the error rate can be read off the issue list.
    """
    issues: list[str] = []
    recommendations: list[str] = []

    duplicates = check_duplicates(records)
    issues.extend(duplicates)

    total = 0.0
    counted = 0
    for record in records:
        check = validate_price_row(record, records, today=today)
        if check.passed or check.score >= MIN_COUNTED_SCORE:
            total += check.score
            counted += 1
        issues.extend(f"error: {e}" for e in check.errors)
        issues.extend(f"warning: {w}" for w in check.warnings)

    overall = total / counted if counted else 0.0

    if overall < LOW_QUALITY_SCORE:
        recommendations.append(RECOMMEND_AUDIT)
    if duplicates:
        recommendations.append(RECOMMEND_DEDUP)
    error_count = sum(1 for issue in issues if "error" in issue.lower())
    if error_count > len(records) * MAX_ERROR_RATIO:
        recommendations.append(RECOMMEND_PAUSE)

    return BatchAssessment(
        overall_score=overall,
        issues=issues[:MAX_ISSUES],
        recommendations=recommendations,
    )


def compare_with_prior(
    records: Sequence[PriceRecord],
    prior: Sequence[PriceRecord],
) -> list[str]:
    """Diff a new batch against records the platform already holds.

    Flags keys that were already imported and day-over-day changes against
    the latest earlier prior row of the same instrument.
    """
    warnings: list[str] = []
    prior_keys = {r.key for r in prior}

    for record in records:
        if record.key in prior_keys:
            warnings.append(f"Already imported: {_key_text(record)}")
            continue
        earlier = [
            p
            for p in prior
            if p.market_code == record.market_code
            and p.instrument_code == record.instrument_code
            and p.date < record.date
        ]
        if not earlier:
            continue
        latest = max(earlier, key=lambda p: p.date)
        change = _change_percent(record.price, latest.price)
        if change is None:
            continue
        if change > EXTREME_CHANGE_PERCENT:
            label = "Extreme"
        elif change > LARGE_CHANGE_PERCENT:
            label = "Large"
        else:
            continue
        warnings.append(
            f"{label} price change {change:.1f}% vs stored {latest.date} "
            f"on {record.date} ({record.instrument_code})"
        )
    return warnings
