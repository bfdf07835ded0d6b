"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

if TYPE_CHECKING:
    from carbon_collector.adapters.base import SourceAdapter

# --- Type Aliases ---

TaskId = str
InstrumentCode = str
RecordKey = tuple[str, str, str]

# --- Enumerations ---


class MarketCode(StrEnum):
    """Carbon markets known to the platform."""

    EU = "EU"
    UK = "UK"
    CCA = "CCA"
    CEA = "CEA"
    CCER = "CCER"
    CDR = "CDR"


class Currency(StrEnum):
    """Price currencies accepted by the import sink."""

    EUR = "EUR"
    GBP = "GBP"
    USD = "USD"
    CNY = "CNY"


class HealthState(StrEnum):
    """Three-level health classification for adapters and the scheduler."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class AlertLevel(StrEnum):
    """Alert severities understood by alerters."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# Canonical currency per market
MARKET_CURRENCIES: dict[MarketCode, Currency] = {
    MarketCode.EU: Currency.EUR,
    MarketCode.UK: Currency.GBP,
    MarketCode.CCA: Currency.USD,
    MarketCode.CEA: Currency.CNY,
    MarketCode.CCER: Currency.CNY,
    MarketCode.CDR: Currency.USD,
}


def utcnow() -> datetime:
    return datetime.now(UTC)


# --- Record Models ---


class PriceRecord(BaseModel):
    """One observed price point for one instrument on one trading day.

    Identity fields are plain strings so that a malformed batch (wrong
    market, wrong currency, bad date) can still be represented and is
    rejected by validation rather than at construction.
    """

    model_config = ConfigDict(frozen=True)

    date: str
    market_code: str
    instrument_code: str
    price: float
    currency: str
    volume: float | None = None
    source_url: str = ""
    collected_by: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("price")
    @classmethod
    def price_must_be_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError(f"price must be finite, got: {v!r}")
        return v

    @field_validator("volume")
    @classmethod
    def volume_non_negative(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError(f"volume must be >= 0, got: {v!r}")
        return v

    @property
    def key(self) -> RecordKey:
        """Natural dedup key: (market_code, instrument_code, date)."""
        return (self.market_code, self.instrument_code, self.date)


class Evidence(BaseModel):
    """One proof-of-collection item captured during a fetch attempt."""

    model_config = ConfigDict(frozen=True)

    source: str
    url: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    screenshot: str | None = None
    data: str | None = None
    success: bool
    error: str | None = None
    sha256: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def single_payload(self) -> Evidence:
        if self.screenshot is not None and self.data is not None:
            raise ValueError("Evidence carries either a screenshot or data, not both")
        return self


class CollectionResult(BaseModel):
    """Records plus evidence produced by one adapter collection call."""

    model_config = ConfigDict(frozen=True)

    records: list[PriceRecord] = Field(default_factory=list)
    evidence: list[Evidence] = Field(default_factory=list)


# --- Quality Models ---


class ValidationResult(BaseModel):
    """Verdict of an adapter's validation pass over a batch."""

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    quality_score: float
    record_count: int
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("quality_score")
    @classmethod
    def score_in_range(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"quality_score must be in [0, 100], got {v}")
        return v


class QualityCheckOptions(BaseModel):
    """Thresholds for QualityChecker.check_quality()."""

    model_config = ConfigDict(frozen=True)

    expected_price_range: tuple[float, float] | None = None
    max_price_change_percent: float | None = None
    required_fields: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def range_ordered(self) -> QualityCheckOptions:
        if self.expected_price_range is not None:
            low, high = self.expected_price_range
            if low > high:
                raise ValueError(
                    f"expected_price_range min ({low}) exceeds max ({high})"
                )
        return self


class QualityCheckResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    warnings: list[str] = Field(default_factory=list)
    passed: bool
    score: float


class RowCheck(BaseModel):
    """Outcome of validating a single price row."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    score: float


class BatchAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_score: float
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


# --- Scheduling Models ---


@dataclass
class ScheduledTask:
    """One adapter bound to one cron cadence.

    Mutable: the scheduler updates run timestamps, the enabled toggle and
    the consecutive-failure counter in place.
    """

    id: TaskId
    adapter: SourceAdapter
    schedule: str
    enabled: bool = True
    retry_count: int = 0
    max_retries: int = 3
    last_run: datetime | None = None
    next_run: datetime | None = None

    @property
    def retries_exhausted(self) -> bool:
        return self.retry_count >= self.max_retries


class TaskExecutionResult(BaseModel):
    """Immutable record of one task execution attempt."""

    model_config = ConfigDict(frozen=True)

    task_id: TaskId
    success: bool
    record_count: int = 0
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    execution_time: float = 0.0
    timestamp: datetime = Field(default_factory=utcnow)


class HealthStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: HealthState
    message: str


class SchedulerHealth(BaseModel):
    """Aggregate health of every task's adapter."""

    model_config = ConfigDict(frozen=True)

    scheduler: HealthState
    tasks: dict[TaskId, HealthStatus] = Field(default_factory=dict)


class ImportReceipt(BaseModel):
    """Acknowledgement returned by the import sink."""

    model_config = ConfigDict(frozen=True)

    imported: int
    response: dict[str, Any] = Field(default_factory=dict)
