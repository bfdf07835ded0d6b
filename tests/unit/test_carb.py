"""Tests for carbon_collector.adapters.carb (CarbCSVAdapter)."""

from __future__ import annotations

from datetime import date

import httpx
import pytest
import respx

from carbon_collector.adapters.carb import CarbCSVAdapter, read_csv_rows
from carbon_collector.collection.fetcher import SourceFetcher

AUCTION_URL, SECONDARY_URL = (s.url for s in CarbCSVAdapter.sources)
TARGET = date(2024, 2, 21)


@pytest.fixture
async def fetcher(fetch_config):
    async with SourceFetcher(fetch_config) as f:
        yield f


class TestReadCsvRows:
    def test_trims_and_drops_blank_rows(self):
        rows = read_csv_rows(" date , price \n 2024-02-21 , 41.76 \n,\n")
        assert rows == [{"date": "2024-02-21", "price": "41.76"}]


class TestCarbCollection:
    @respx.mock
    async def test_column_variants(self, fetcher):
        respx.get(AUCTION_URL).mock(
            return_value=httpx.Response(
                200,
                text="auction_date,clearing_price,allowances_sold\n"
                "02/21/2024,$41.76,\"51,266,310\"\n",
            )
        )
        respx.get(SECONDARY_URL).mock(
            return_value=httpx.Response(
                200,
                text="Trading_Date,Settlement_Price,Volume\n2024-02-20,40.95,1200\n",
            )
        )
        result = await CarbCSVAdapter(fetcher).collect_data(TARGET)

        by_date = {r.date: r for r in result.records}
        assert by_date["2024-02-21"].price == 41.76
        assert by_date["2024-02-21"].volume == 51266310.0
        assert by_date["2024-02-20"].price == 40.95
        assert all(r.market_code == "CCA" and r.currency == "USD" for r in result.records)
        assert len(result.evidence) == 2
        assert all(e.success for e in result.evidence)

    @respx.mock
    async def test_accept_header(self, fetcher):
        route = respx.get(AUCTION_URL).mock(return_value=httpx.Response(200, text="date,price\n"))
        respx.get(SECONDARY_URL).mock(return_value=httpx.Response(200, text="date,price\n"))
        await CarbCSVAdapter(fetcher).collect_data(TARGET)
        assert route.calls.last.request.headers["Accept"].startswith("text/csv")

    @respx.mock
    async def test_bad_rows_skipped(self, fetcher):
        respx.get(AUCTION_URL).mock(
            return_value=httpx.Response(
                200,
                text="date,price,volume\n"
                "2024-02-21,abc,10\n"
                "13/45/2024,40.00,10\n"
                "2024-02-21,-3,10\n"
                "2024-02-22,42.10,-\n",
            )
        )
        respx.get(SECONDARY_URL).mock(return_value=httpx.Response(500))
        result = await CarbCSVAdapter(fetcher).collect_data(TARGET)

        assert [(r.date, r.price, r.volume) for r in result.records] == [("2024-02-22", 42.1, None)]
        failed = [e for e in result.evidence if not e.success]
        assert [e.source for e in failed] == ["CARB Secondary Market"]
