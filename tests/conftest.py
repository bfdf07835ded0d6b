"""Shared pytest fixtures for carbon-collector."""

from __future__ import annotations

from datetime import date

import pytest

from carbon_collector.core.config import FetchConfig
from carbon_collector.core.models import (
    CollectionResult,
    Currency,
    HealthState,
    HealthStatus,
    MarketCode,
    PriceRecord,
    ValidationResult,
)


@pytest.fixture
def fetch_config() -> FetchConfig:
    """Fetch settings with no backoff so retry tests run instantly."""
    return FetchConfig(retry_count=2, backoff_base=0.0, rate_limit=1000.0)


@pytest.fixture
def make_record():
    """Factory for PriceRecord with overridable defaults (a CEA close)."""

    def _make(**overrides) -> PriceRecord:
        defaults = dict(
            date="2024-01-15",
            market_code="CEA",
            instrument_code="CEA",
            price=70.5,
            currency="CNY",
            volume=125000.0,
            source_url="http://www.cneeex.com/c/2020-04-08/452044.shtml",
            collected_by="MCP:CEA CNEEEX",
            metadata={"source": "CEA CNEEEX"},
        )
        defaults.update(overrides)
        return PriceRecord(**defaults)

    return _make


class FakeAdapter:
    """In-memory SourceAdapter with scripted collection and health outcomes."""

    def __init__(
        self,
        market_code: MarketCode = MarketCode.CEA,
        records: list[PriceRecord] | None = None,
        errors: list[str] | None = None,
        warnings: list[str] | None = None,
        health: HealthState = HealthState.HEALTHY,
        collect_exc: Exception | None = None,
    ) -> None:
        self.name = f"Fake {market_code}"
        self.market_code = market_code
        self.records = records or []
        self.errors = errors or []
        self.warnings = warnings or []
        self.health = health
        self.collect_exc = collect_exc
        self.collect_calls = 0

    @property
    def currency(self) -> Currency:
        return Currency.CNY

    async def collect_data(self, target_date: date | None = None) -> CollectionResult:
        self.collect_calls += 1
        if self.collect_exc is not None:
            raise self.collect_exc
        return CollectionResult(records=self.records)

    def validate_data(self, records) -> ValidationResult:
        return ValidationResult(
            is_valid=not self.errors,
            errors=self.errors,
            warnings=self.warnings,
            quality_score=90.0 if records else 0.0,
            record_count=len(records),
        )

    async def get_health_status(self) -> HealthStatus:
        return HealthStatus(status=self.health, message=f"{self.name} is {self.health}")


@pytest.fixture
def fake_adapter():
    """Factory for FakeAdapter instances."""
    return FakeAdapter
