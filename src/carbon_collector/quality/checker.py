"""Batch-level quality scoring.

Two scores coexist and are kept deliberately separate:

* ``calculate_score`` is a quick deduction score used for the adapter's
  headline quality number.
* ``check_quality`` produces warnings against market thresholds and its own
  completeness-weighted score.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from carbon_collector.collection.normalize import format_number
from carbon_collector.core.models import (
    PriceRecord,
    QualityCheckOptions,
    QualityCheckResult,
)

logger = logging.getLogger(__name__)

# Deduction weights for calculate_score()
MISSING_FIELD_PENALTY = 10
NON_POSITIVE_PRICE_PENALTY = 15
MIXED_MARKET_PENALTY = 20
UNORDERED_DATES_PENALTY = 5

# check_quality() scoring
WARNING_PENALTY = 5
VOLUME_BONUS = 10
METADATA_BONUS = 5
MAX_WARNINGS_TO_PASS = 5


def _clamp(score: float) -> float:
    return max(0.0, min(100.0, score))


class QualityChecker:
    """Pure scoring and threshold checks over a batch of price records."""

    def calculate_score(self, records: Sequence[PriceRecord]) -> float:
        """Deduction-based score in [0, 100]. An empty batch scores 0."""
        if not records:
            return 0.0

        deductions = 0
        for record in records:
            if not record.date or not record.price or not record.market_code:
                deductions += MISSING_FIELD_PENALTY
            if record.price <= 0:
                deductions += NON_POSITIVE_PRICE_PENALTY

        if len({r.market_code for r in records}) > 1:
            deductions += MIXED_MARKET_PENALTY

        dates = [r.date for r in records]
        if dates != sorted(dates):
            deductions += UNORDERED_DATES_PENALTY

        return max(0.0, 100.0 - min(deductions, 100))

    def check_quality(
        self,
        records: Sequence[PriceRecord],
        options: QualityCheckOptions,
    ) -> QualityCheckResult:
        """Threshold checks: price range, required fields, day-over-day change.

        ``passed`` requires no required-field violation and fewer than five
        warnings in total.
        """
        warnings: list[str] = []
        passed = True

        for record in records:
            if options.expected_price_range is not None:
                low, high = options.expected_price_range
                if record.price < low or record.price > high:
                    warnings.append(
                        f"Price {format_number(record.price)} outside expected range "
                        f"({format_number(low)}-{format_number(high)})"
                    )

            for field in options.required_fields:
                if not getattr(record, field, None):
                    warnings.append(f"Missing required field: {field}")
                    passed = False

        if options.max_price_change_percent is not None:
            ordered = sorted(records, key=lambda r: r.date)
            for prev, curr in zip(ordered, ordered[1:]):
                if prev.price <= 0:
                    continue
                change = abs((curr.price - prev.price) / prev.price * 100)
                if change > options.max_price_change_percent:
                    warnings.append(
                        f"Large price change {change:.1f}% between "
                        f"{prev.date} and {curr.date}"
                    )

        score = self._completeness_score(records, len(warnings))
        logger.debug(
            "Quality check on %d records: %d warnings, score %.1f",
            len(records), len(warnings), score,
        )
        return QualityCheckResult(
            warnings=warnings,
            passed=passed and len(warnings) < MAX_WARNINGS_TO_PASS,
            score=score,
        )

    def _completeness_score(
        self, records: Sequence[PriceRecord], warning_count: int
    ) -> float:
        score = 100.0 - warning_count * WARNING_PENALTY
        if records:
            with_volume = sum(1 for r in records if r.volume is not None)
            with_metadata = sum(1 for r in records if r.metadata)
            score += with_volume / len(records) * VOLUME_BONUS
            score += with_metadata / len(records) * METADATA_BONUS
        return _clamp(score)
