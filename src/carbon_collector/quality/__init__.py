"""carbon_collector.quality — Batch scoring and row validation."""

from carbon_collector.quality.batch import (
    assess_batch_quality,
    check_completeness,
    check_duplicates,
    compare_with_prior,
    validate_price_row,
)
from carbon_collector.quality.checker import QualityChecker

__all__ = [
    "QualityChecker",
    "assess_batch_quality",
    "check_completeness",
    "check_duplicates",
    "compare_with_prior",
    "validate_price_row",
]
