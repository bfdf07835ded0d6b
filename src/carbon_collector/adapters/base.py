"""Source adapter protocol and the shared adapter machinery."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, ClassVar, Protocol, Sequence, runtime_checkable

import httpx

from carbon_collector.collection.evidence import EvidenceCollector
from carbon_collector.collection.fetcher import SourceFetcher
from carbon_collector.collection.normalize import format_number
from carbon_collector.collection.renderer import PageRenderer, StaticPageRenderer
from carbon_collector.core.exceptions import SourceError
from carbon_collector.core.models import (
    MARKET_CURRENCIES,
    CollectionResult,
    Currency,
    HealthState,
    HealthStatus,
    MarketCode,
    PriceRecord,
    QualityCheckOptions,
    ValidationResult,
    utcnow,
)
from carbon_collector.quality.batch import assess_batch_quality
from carbon_collector.quality.checker import QualityChecker

logger = logging.getLogger("carbon_collector.adapters")

REQUIRED_FIELDS = ["date", "price", "market_code", "instrument_code"]
INSUFFICIENT_DATA = "Insufficient data: no records collected"


@runtime_checkable
class SourceAdapter(Protocol):
    """Contract every market adapter implements."""

    @property
    def name(self) -> str: ...

    @property
    def market_code(self) -> MarketCode: ...

    @property
    def currency(self) -> Currency: ...

    async def collect_data(self, target_date: date | None = None) -> CollectionResult: ...

    def validate_data(self, records: Sequence[PriceRecord]) -> ValidationResult: ...

    async def get_health_status(self) -> HealthStatus: ...


@dataclass(frozen=True)
class Source:
    """One external endpoint an adapter reads from."""

    name: str
    url: str
    selector: str | None = None
    timeout: float | None = None


def _is_iso_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return len(value) == 10


class BaseAdapter:
    """Shared behaviour for market adapters.

    Subclasses declare their market constants and sources, and implement
    ``_collect_from`` for a single source. Sources are fetched concurrently
    and each one fails in isolation: a ``SourceError`` becomes failure
    evidence and contributes no records.
    """

    name: ClassVar[str]
    market_code: ClassVar[MarketCode]
    instrument_code: ClassVar[str]
    sources: ClassVar[tuple[Source, ...]]
    window_days: ClassVar[int] = 3
    price_range: ClassVar[tuple[float, float]]
    max_change_percent: ClassVar[float]
    probe_url: ClassVar[str]
    probe_method: ClassVar[str] = "HEAD"
    probe_timeout: ClassVar[float] = 5.0
    probe_params: ClassVar[dict[str, Any] | None] = None
    healthy_message: ClassVar[str] = "Data source accessible"

    def __init__(
        self,
        fetcher: SourceFetcher,
        checker: QualityChecker | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._checker = checker or QualityChecker()

    @property
    def currency(self) -> Currency:
        return MARKET_CURRENCIES[self.market_code]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(market={self.market_code.value})"

    # --- Collection ---

    async def collect_data(self, target_date: date | None = None) -> CollectionResult:
        target = target_date or date.today()
        logger.info("Collecting %s data for %s", self.market_code, target.isoformat())

        evidence = EvidenceCollector()
        batches = await asyncio.gather(
            *(self._collect_isolated(source, target, evidence) for source in self.sources)
        )
        records = [record for batch in batches for record in batch]

        logger.info(
            "Collected %d %s records from %d sources",
            len(records), self.market_code, len(self.sources),
        )
        return CollectionResult(records=records, evidence=evidence.items)

    async def _collect_isolated(
        self,
        source: Source,
        target: date,
        evidence: EvidenceCollector,
    ) -> list[PriceRecord]:
        try:
            return await self._collect_from(source, target, evidence)
        except SourceError as e:
            logger.warning("Collection from %s failed: %s", source.name, e)
            evidence.record_failure(source.name, source.url, e)
            return []

    async def _collect_from(
        self,
        source: Source,
        target: date,
        evidence: EvidenceCollector,
    ) -> list[PriceRecord]:
        raise NotImplementedError

    def _make_record(
        self,
        record_date: str,
        price: float,
        volume: float | None,
        source: Source,
        raw: Any,
        instrument_code: str | None = None,
        source_url: str | None = None,
        **extra: Any,
    ) -> PriceRecord:
        return PriceRecord(
            date=record_date,
            market_code=self.market_code.value,
            instrument_code=instrument_code or self.instrument_code,
            price=price,
            currency=self.currency.value,
            volume=volume,
            source_url=source_url or source.url,
            collected_by=f"MCP:{self.name}",
            metadata={
                "source": source.name,
                "raw_data": raw,
                "collection_time": utcnow().isoformat(),
                **extra,
            },
        )

    # --- Validation ---

    def validate_data(self, records: Sequence[PriceRecord]) -> ValidationResult:
        """Validate a batch: hard errors, market warnings, and quality scores.

        The quality score is computed even when the batch is invalid so that
        failed runs stay diagnosable.
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not records:
            errors.append(INSUFFICIENT_DATA)

        low, high = self.price_range
        for record in records:
            if record.market_code != self.market_code:
                errors.append(f"Invalid market code: {record.market_code}")
            expected = MARKET_CURRENCIES.get(record.market_code, self.currency)
            if record.currency != expected:
                errors.append(f"Invalid currency: {record.currency}")
            if not _is_iso_date(record.date):
                errors.append(f"Invalid date: {record.date}")
            if record.price < low or record.price > high:
                warnings.append(
                    f"Price {format_number(record.price)} outside typical "
                    f"{self.market_code} range ({format_number(low)}-"
                    f"{format_number(high)} {self.currency})"
                )
        warnings.extend(self._extra_warnings(records))

        quality = self._checker.check_quality(
            records,
            QualityCheckOptions(
                expected_price_range=self.price_range,
                max_price_change_percent=self.max_change_percent,
                required_fields=REQUIRED_FIELDS,
            ),
        )
        warnings.extend(quality.warnings)

        assessment = assess_batch_quality(records)
        warnings.extend(assessment.issues)

        deduction_score = self._checker.calculate_score(records)
        quality_score = min(deduction_score, assessment.overall_score) if records else 0.0

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            quality_score=quality_score,
            record_count=len(records),
            metadata=self._batch_metadata(
                records,
                deduction_score=deduction_score,
                completeness_score=quality.score,
                batch_score=assessment.overall_score,
                recommendations=assessment.recommendations,
            ),
        )

    def _extra_warnings(self, records: Sequence[PriceRecord]) -> list[str]:
        return []

    def _batch_metadata(self, records: Sequence[PriceRecord], **scores: Any) -> dict[str, Any]:
        metadata: dict[str, Any] = {"scores": scores}
        if records:
            prices = [r.price for r in records]
            dates = [r.date for r in records]
            metadata["price_range"] = {"min": min(prices), "max": max(prices)}
            metadata["date_range"] = {"start": min(dates), "end": max(dates)}
        return metadata

    # --- Health ---

    async def get_health_status(self) -> HealthStatus:
        """Lightweight connectivity probe, independent of a full collection."""
        try:
            response = await self._fetcher.probe(
                self.probe_url,
                method=self.probe_method,
                timeout=self.probe_timeout,
                params=self.probe_params,
            )
        except httpx.HTTPError as e:
            return HealthStatus(
                status=HealthState.UNHEALTHY,
                message=f"Connection failed: {str(e) or type(e).__name__}",
            )

        if response.is_success:
            return HealthStatus(status=HealthState.HEALTHY, message=self.healthy_message)
        return HealthStatus(
            status=HealthState.DEGRADED,
            message=f"Primary source returned {response.status_code}",
        )


class HtmlTableAdapter(BaseAdapter):
    """Adapter whose sources are HTML tables read through a ``PageRenderer``."""

    def __init__(
        self,
        fetcher: SourceFetcher,
        renderer: PageRenderer | None = None,
        checker: QualityChecker | None = None,
    ) -> None:
        super().__init__(fetcher, checker)
        self._renderer = renderer or StaticPageRenderer(fetcher)

    async def _render_rows(
        self,
        source: Source,
        evidence: EvidenceCollector,
    ) -> list[list[str]]:
        """Render ``source`` and keep its screenshot, or the HTML when there is none."""
        page = await self._renderer.render_and_extract(
            source.url,
            source.selector or "table",
            timeout=source.timeout,
        )
        for item in page.evidence:
            evidence.add(item.model_copy(update={"source": source.name, "url": source.url}))
        if page.screenshot is None:
            evidence.record_response(
                source.name, source.url, page.html or "", row_count=len(page.rows)
            )
        return page.rows
