"""China certified emission reduction (CCER) prices from exchange bulletin tables."""

from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Sequence

from carbon_collector.adapters.base import HtmlTableAdapter, Source
from carbon_collector.collection.evidence import EvidenceCollector
from carbon_collector.collection.normalize import parse_date, within_window
from carbon_collector.core.models import MarketCode, PriceRecord

_FULL_DATE = re.compile(r"(\d{4})[/-](\d{1,2})[/-](\d{1,2})")
_MONTH_DAY = re.compile(r"(\d{1,2})[/-](\d{1,2})")
_PRICE = re.compile(r"(\d+(?:[,.]\d+)?)")

FRESHNESS_DAYS = 30


def _infer_year(month: int, day: int, reference: date) -> int:
    try:
        candidate = date(reference.year, month, day)
    except ValueError:
        return reference.year
    if (candidate - reference).days > FRESHNESS_DAYS:
        return reference.year - 1
    return reference.year


def scan_row(cells: Sequence[str], reference: date) -> list[tuple[str, float]]:
    """Find every adjacent ``(date, price)`` cell pair in a bulletin row.

    Layouts differ between exchanges, so no column positions are assumed.
    A month/day date without a year takes the year of ``reference``, or the
    year before when that would put it more than ``FRESHNESS_DAYS`` after
    ``reference`` (a December bulletin read in January).
    """
    pairs: list[tuple[str, float]] = []
    for date_text, price_text in zip(cells, cells[1:]):
        price_match = _PRICE.search(price_text)
        if price_match is None:
            continue

        full = _FULL_DATE.search(date_text)
        if full:
            year, month, day = full.groups()
        else:
            short = _MONTH_DAY.search(date_text)
            if short is None:
                continue
            month, day = short.groups()
            year = str(_infer_year(int(month), int(day), reference))

        record_date = parse_date(f"{year}-{month}-{day}")
        if record_date is None:
            continue
        try:
            price = float(price_match.group(1).replace(",", ""))
        except ValueError:
            continue
        if price > 0:
            pairs.append((record_date, price))
    return pairs


class CCERAdapter(HtmlTableAdapter):
    """Scans the Guangzhou and Beijing exchange bulletins for CCER prices.

    Neither bulletin reports volume. CCER trades thinly, so the window is
    a month rather than a few days.
    """

    name = "CCER Official"
    market_code = MarketCode.CCER
    instrument_code = "CCER"
    sources = (
        Source(
            name="Guangzhou Emissions Exchange",
            url="https://www.cnemission.com/article/hqxx/",
            selector=".price-table",
            timeout=10.0,
        ),
        Source(
            name="Beijing Green Exchange",
            url="https://www.bjets.com.cn/article/jyxx/",
            selector=".trading-info",
            timeout=10.0,
        ),
    )
    window_days = 30
    price_range = (1.0, 200.0)
    max_change_percent = 25.0
    probe_url = "https://www.cnemission.com/article/hqxx/"
    probe_timeout = 5.0
    healthy_message = "CCER data sources accessible"

    async def _collect_from(
        self,
        source: Source,
        target: date,
        evidence: EvidenceCollector,
    ) -> list[PriceRecord]:
        rows = await self._render_rows(source, evidence)

        records: list[PriceRecord] = []
        for cells in rows:
            if len(cells) < 3:
                continue
            raw_text = " | ".join(cells)
            for record_date, price in scan_row(cells, target):
                if not within_window(record_date, target, self.window_days):
                    continue
                records.append(
                    self._make_record(record_date, price, None, source, raw=raw_text)
                )
        return records

    def _extra_warnings(self, records: Sequence[PriceRecord]) -> list[str]:
        cutoff = (date.today() - timedelta(days=FRESHNESS_DAYS)).isoformat()
        return [
            f"Data older than {FRESHNESS_DAYS} days: {r.date}"
            for r in records
            if r.date < cutoff
        ]
