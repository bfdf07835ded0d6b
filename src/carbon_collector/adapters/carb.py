"""California Carbon Allowance (CCA) prices from CARB's public CSV exports."""

from __future__ import annotations

import csv
import io
import logging
from datetime import date

from carbon_collector.adapters.base import BaseAdapter, Source
from carbon_collector.collection.evidence import EvidenceCollector
from carbon_collector.collection.normalize import (
    parse_date,
    parse_price,
    parse_volume,
    pick_field,
    within_window,
)
from carbon_collector.core.models import MarketCode, PriceRecord

logger = logging.getLogger(__name__)

_CSV_ACCEPT = "text/csv,application/csv,text/plain"

# Candidate column names, probed in order; CARB has renamed columns across exports
DATE_FIELDS = ("date", "Date", "Trading_Date", "auction_date", "settlement_date")
PRICE_FIELDS = ("price", "Price", "Settlement_Price", "clearing_price", "avg_price")
VOLUME_FIELDS = ("volume", "Volume", "Quantity", "allowances_sold", "total_volume")


def read_csv_rows(text: str) -> list[dict[str, str]]:
    """Parse CSV text into trimmed dict rows, dropping blank lines."""
    reader = csv.DictReader(io.StringIO(text))
    rows: list[dict[str, str]] = []
    for raw in reader:
        row = {
            k.strip(): v.strip()
            for k, v in raw.items()
            if isinstance(k, str) and isinstance(v, str)
        }
        if any(row.values()):
            rows.append(row)
    return rows


class CarbCSVAdapter(BaseAdapter):
    """Reads CARB auction results and secondary market CSV files.

    Column layouts drift between yearly exports, so each logical field is
    taken from the first candidate column that parses.
    """

    name = "CARB CSV"
    market_code = MarketCode.CCA
    instrument_code = "CCA"
    sources = (
        Source(
            name="CARB Auction Results",
            url="https://ww2.arb.ca.gov/sites/default/files/2024/auction_results.csv",
            timeout=30.0,
        ),
        Source(
            name="CARB Secondary Market",
            url="https://ww2.arb.ca.gov/sites/default/files/2024/secondary_market_data.csv",
            timeout=30.0,
        ),
    )
    window_days = 3
    price_range = (5.0, 100.0)
    max_change_percent = 20.0
    probe_url = "https://ww2.arb.ca.gov/sites/default/files/2024/auction_results.csv"
    probe_timeout = 10.0
    healthy_message = "CARB CSV sources accessible"

    async def _collect_from(
        self,
        source: Source,
        target: date,
        evidence: EvidenceCollector,
    ) -> list[PriceRecord]:
        text = await self._fetcher.get_text(
            source.url,
            timeout=source.timeout,
            headers={"Accept": _CSV_ACCEPT},
        )
        evidence.record_response(source.name, source.url, text)

        records: list[PriceRecord] = []
        for row in read_csv_rows(text):
            record = self._parse_row(row, source)
            if record is None:
                logger.debug("Skipping unparseable CARB row: %s", row)
                continue
            if within_window(record.date, target, self.window_days):
                records.append(record)
        return records

    def _parse_row(self, row: dict[str, str], source: Source) -> PriceRecord | None:
        record_date = pick_field(row, DATE_FIELDS, parse_date)
        price = pick_field(row, PRICE_FIELDS, parse_price)
        if record_date is None or price is None:
            return None
        volume = pick_field(row, VOLUME_FIELDS, parse_volume)
        return self._make_record(record_date, price, volume, source, raw=row)
