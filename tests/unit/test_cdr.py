"""Tests for carbon_collector.adapters.cdr (CDRAdapter)."""

from __future__ import annotations

from datetime import date

import httpx
import pytest
import respx

from carbon_collector.adapters.cdr import (
    PRICES_URL,
    TRANSACTIONS_URL,
    CDRAdapter,
    item_date,
    transaction_weight,
    weighted_average_price,
)
from carbon_collector.collection.fetcher import SourceFetcher

TARGET = date(2024, 5, 10)


@pytest.fixture
async def fetcher(fetch_config):
    async with SourceFetcher(fetch_config) as f:
        yield f


class TestHelpers:
    def test_item_date_prefers_explicit_fields(self):
        assert item_date({"date": "2024-05-09", "timestamp": "2024-01-01T00:00:00Z"}) == "2024-05-09"

    def test_item_date_from_timestamp(self):
        assert item_date({"timestamp": "2024-05-09T13:45:00Z"}) == "2024-05-09"

    def test_item_date_missing(self):
        assert item_date({"price": 100}) is None

    def test_weighted_average(self):
        txs = [{"price": 100, "volume": 1}, {"price": 200, "volume": 3}]
        assert weighted_average_price(txs) == 175.0

    def test_missing_volume_weighs_one(self):
        txs = [{"price": 100}, {"price": 300, "quantity": 1}]
        assert weighted_average_price(txs) == 200.0

    def test_zero_volume_falls_back_to_quantity_then_one(self):
        assert transaction_weight({"price": 100, "volume": 0, "quantity": 4}) == 4.0
        assert transaction_weight({"price": 100, "volume": 0}) == 1.0
        assert transaction_weight({"price": 100, "volume": "-"}) == 1.0

    def test_all_zero_volumes_average_evenly(self):
        txs = [{"price": 150, "volume": 0}, {"price": 250, "volume": 0}]
        assert weighted_average_price(txs) == 200.0

    def test_no_valid_prices(self):
        assert weighted_average_price([{"price": 0, "volume": 5}]) == 0.0


class TestCDRCollection:
    @respx.mock
    async def test_prices_and_aggregated_transactions(self, fetcher):
        prices = respx.get(PRICES_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "success": True,
                    "data": [
                        {"date": "2024-05-09", "price": 420.0, "type": "DAC", "volume": 500},
                        {"date": "2024-05-09", "price": "n/a"},
                    ],
                },
            )
        )
        respx.get(TRANSACTIONS_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "success": True,
                    "transactions": [
                        {"timestamp": "2024-05-08T10:00:00Z", "price": 100, "volume": 1},
                        {"timestamp": "2024-05-08T15:00:00Z", "price": 200, "volume": 3},
                        {"timestamp": "2024-04-01T15:00:00Z", "price": 150, "volume": 3},
                    ],
                },
            )
        )
        result = await CDRAdapter(fetcher).collect_data(TARGET)

        assert prices.calls.last.request.url.params["date"] == "2024-05-10"
        assert prices.calls.last.request.url.params["limit"] == "100"

        quote = next(r for r in result.records if r.instrument_code == "DAC")
        assert (quote.date, quote.price, quote.volume) == ("2024-05-09", 420.0, 500.0)

        aggregated = next(r for r in result.records if r.metadata.get("aggregated"))
        assert aggregated.date == "2024-05-08"
        assert aggregated.price == 175.0
        assert aggregated.volume == 4.0
        assert aggregated.metadata["transaction_count"] == 2
        # Outside the five-day window
        assert all(r.date != "2024-04-01" for r in result.records)

    @respx.mock
    async def test_unsuccessful_envelope_yields_nothing(self, fetcher):
        respx.get(PRICES_URL).mock(
            return_value=httpx.Response(200, json={"success": False, "data": [{"date": "2024-05-10", "price": 1}]})
        )
        respx.get(TRANSACTIONS_URL).mock(return_value=httpx.Response(200, json={"success": True}))
        result = await CDRAdapter(fetcher).collect_data(TARGET)
        assert result.records == []
        assert len(result.evidence) == 2

    @respx.mock
    async def test_non_object_payload_is_failed_evidence(self, fetcher):
        respx.get(PRICES_URL).mock(return_value=httpx.Response(200, json=[1, 2, 3]))
        respx.get(TRANSACTIONS_URL).mock(return_value=httpx.Response(200, text="oops"))
        result = await CDRAdapter(fetcher).collect_data(TARGET)
        assert result.records == []
        errors = sorted(e.error for e in result.evidence if not e.success)
        assert errors[0].startswith("Malformed JSON")
        assert errors[1] == "Unexpected CDR.fyi Prices API payload: list"
