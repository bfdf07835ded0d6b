"""Carbon dioxide removal (CDR) prices from the CDR.fyi public API."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Any

from carbon_collector.adapters.base import BaseAdapter, Source
from carbon_collector.collection.evidence import EvidenceCollector
from carbon_collector.collection.normalize import (
    parse_date,
    parse_price,
    parse_volume,
    pick_field,
    within_window,
)
from carbon_collector.core.exceptions import ExtractionError
from carbon_collector.core.models import MarketCode, PriceRecord

logger = logging.getLogger(__name__)

CDR_API_BASE = "https://cdr.fyi/api/v1"
PRICES_URL = f"{CDR_API_BASE}/prices"
TRANSACTIONS_URL = f"{CDR_API_BASE}/transactions"
MARKETS_URL = f"{CDR_API_BASE}/markets"

DATE_FIELDS = ("date", "trading_date")
PRICE_FIELDS = ("price", "settlement_price", "avg_price")
VOLUME_FIELDS = ("volume", "quantity", "tonnes")


def item_date(item: dict[str, Any]) -> str | None:
    """Trading day of an API item: explicit date fields first, then the timestamp."""
    found = pick_field(item, DATE_FIELDS, parse_date)
    if found is not None:
        return found
    timestamp = item.get("timestamp")
    if isinstance(timestamp, str):
        return parse_date(timestamp[:10])
    return None


def _positive_volume(value: Any) -> float | None:
    volume = parse_volume(value)
    return volume if volume else None


def transaction_weight(tx: dict[str, Any]) -> float:
    """Weight of one transaction: a positive volume, else quantity, else 1."""
    return pick_field(tx, ("volume", "quantity"), _positive_volume) or 1.0


def weighted_average_price(transactions: list[dict[str, Any]]) -> float:
    """Volume-weighted mean price over transactions with a positive price."""
    total_value = 0.0
    total_volume = 0.0
    for tx in transactions:
        price = pick_field(tx, PRICE_FIELDS, parse_price) or 0.0
        volume = transaction_weight(tx)
        if price > 0:
            total_value += price * volume
            total_volume += volume
    return total_value / total_volume if total_volume > 0 else 0.0


class CDRAdapter(BaseAdapter):
    """Reads CDR.fyi price quotes and daily-aggregated transactions.

    Removal credits trade infrequently, so both sources use a five-day window.
    """

    name = "CDR.fyi"
    market_code = MarketCode.CDR
    instrument_code = "CDR"
    sources = (
        Source(name="CDR.fyi Prices API", url=PRICES_URL, timeout=15.0),
        Source(name="CDR.fyi Transactions API", url=TRANSACTIONS_URL, timeout=15.0),
    )
    window_days = 5
    price_range = (20.0, 1000.0)
    max_change_percent = 30.0
    probe_url = MARKETS_URL
    probe_method = "GET"
    probe_timeout = 5.0
    probe_params = {"limit": 1}
    healthy_message = "CDR.fyi API accessible"

    async def _collect_from(
        self,
        source: Source,
        target: date,
        evidence: EvidenceCollector,
    ) -> list[PriceRecord]:
        url = f"{source.url}?date={target.isoformat()}&limit=100"
        payload = await self._fetcher.get_json(url, timeout=source.timeout)
        if not isinstance(payload, dict):
            raise ExtractionError(
                f"Unexpected {source.name} payload: {type(payload).__name__}",
                context={"url": url, "reason": "not_an_object"},
            )

        if source.url == TRANSACTIONS_URL:
            items = payload.get("transactions")
            parse = self._aggregate_transactions
        else:
            items = payload.get("data")
            parse = self._parse_prices

        evidence.record_response(
            source.name,
            url,
            payload,
            record_count=len(items) if isinstance(items, list) else 0,
        )

        if not payload.get("success") or not isinstance(items, list):
            logger.warning("%s returned no usable items", source.name)
            return []
        dict_items = [item for item in items if isinstance(item, dict)]
        return [
            record
            for record in parse(dict_items, source, url)
            if within_window(record.date, target, self.window_days)
        ]

    def _parse_prices(
        self,
        items: list[dict[str, Any]],
        source: Source,
        url: str,
    ) -> list[PriceRecord]:
        records: list[PriceRecord] = []
        for item in items:
            record_date = item_date(item)
            price = pick_field(item, PRICE_FIELDS, parse_price)
            if record_date is None or price is None:
                continue
            instrument = item.get("type") or item.get("instrument") or self.instrument_code
            records.append(
                self._make_record(
                    record_date,
                    price,
                    pick_field(item, VOLUME_FIELDS, parse_volume),
                    source,
                    raw=item,
                    instrument_code=str(instrument),
                    source_url=url,
                )
            )
        return records

    def _aggregate_transactions(
        self,
        items: list[dict[str, Any]],
        source: Source,
        url: str,
    ) -> list[PriceRecord]:
        by_date: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for tx in items:
            tx_date = item_date(tx)
            if tx_date is not None:
                by_date[tx_date].append(tx)

        records: list[PriceRecord] = []
        for tx_date in sorted(by_date):
            transactions = by_date[tx_date]
            avg_price = weighted_average_price(transactions)
            if avg_price <= 0:
                continue
            total_volume = sum(
                pick_field(tx, ("volume", "quantity"), parse_volume) or 0.0
                for tx in transactions
            )
            records.append(
                self._make_record(
                    tx_date,
                    avg_price,
                    total_volume,
                    source,
                    raw=None,
                    source_url=url,
                    transaction_count=len(transactions),
                    aggregated=True,
                )
            )
        return records
