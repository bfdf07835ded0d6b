"""China national ETS allowance (CEA) prices from the CNEEEX quote table."""

from __future__ import annotations

from datetime import date

from carbon_collector.adapters.base import HtmlTableAdapter, Source
from carbon_collector.collection.evidence import EvidenceCollector
from carbon_collector.collection.normalize import (
    parse_date,
    parse_price,
    parse_volume,
    within_window,
)
from carbon_collector.core.models import MarketCode, PriceRecord

CNEEEX_QUOTES_URL = "http://www.cneeex.com/c/2020-04-08/452044.shtml"


class CEAAdapter(HtmlTableAdapter):
    """Reads the CNEEEX daily quote table.

    Each data row is ``date | closing price | volume``. Dates may use the
    Chinese ``年/月/日`` form and volumes may be quoted in 万 (10,000 t).
    """

    name = "CEA CNEEEX"
    market_code = MarketCode.CEA
    instrument_code = "CEA"
    sources = (
        Source(
            name="CEA CNEEEX",
            url=CNEEEX_QUOTES_URL,
            selector=".news_content table",
            timeout=10.0,
        ),
    )
    window_days = 3
    price_range = (20.0, 150.0)
    max_change_percent = 15.0
    probe_url = "http://www.cneeex.com"
    probe_timeout = 5.0
    healthy_message = "CNEEEX website accessible"

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
            record_date = parse_date(cells[0])
            price = parse_price(cells[1])
            if record_date is None or price is None:
                continue
            if not within_window(record_date, target, self.window_days):
                continue
            records.append(
                self._make_record(
                    record_date,
                    price,
                    parse_volume(cells[2]),
                    source,
                    raw={"date": cells[0], "price": cells[1], "volume": cells[2]},
                )
            )
        return records
