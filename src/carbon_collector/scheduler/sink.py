"""Import sink client and the prior-price source used for diffing."""

from __future__ import annotations

import csv
import io
import logging
from datetime import date, timedelta
from typing import Any, Protocol, Sequence, runtime_checkable

import httpx

from carbon_collector.collection.normalize import format_number
from carbon_collector.core.config import SinkConfig
from carbon_collector.core.exceptions import FetchError, SubmissionError
from carbon_collector.core.models import ImportReceipt, PriceRecord

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "market_code",
    "instrument_code",
    "date",
    "price",
    "price_type",
    "currency",
    "unit",
    "volume",
    "source_url",
    "notes",
]
CSV_FILENAME = "mcp-collected-data.csv"
PRICE_TYPE = "close"
UNIT = "tCO2e"
HISTORY_PAGE_SIZE = 1000


def to_import_csv(records: Sequence[PriceRecord]) -> str:
    """Serialize records to the sink's CSV wire format, every field quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for record in records:
        writer.writerow(
            [
                record.market_code,
                record.instrument_code,
                record.date,
                format_number(record.price),
                PRICE_TYPE,
                record.currency,
                UNIT,
                "" if record.volume is None else format_number(record.volume),
                record.source_url,
                f"MCP采集: {record.collected_by}",
            ]
        )
    return buffer.getvalue().removesuffix("\n")


@runtime_checkable
class RecordSink(Protocol):
    async def submit(self, records: Sequence[PriceRecord]) -> ImportReceipt: ...


@runtime_checkable
class PriceHistorySource(Protocol):
    async def fetch_recent(
        self, market_code: str, end: date | None = None
    ) -> list[PriceRecord]: ...


class ImportSink:
    """Posts batches to the platform's multipart CSV import endpoint."""

    def __init__(
        self,
        config: SinkConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout)
        )

    async def __aenter__(self) -> ImportSink:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def submit(self, records: Sequence[PriceRecord]) -> ImportReceipt:
        """Upload ``records`` as one CSV file.

        Raises:
            SubmissionError: Sink unreachable, non-2xx response, or a body
                that is not a JSON object with an integer ``imported``.
        """
        endpoint = self._config.endpoint
        body = to_import_csv(records).encode("utf-8")
        try:
            response = await self._client.post(
                endpoint,
                files={"file": (CSV_FILENAME, body, "text/csv")},
                data={"source": self._config.source_label},
            )
        except httpx.HTTPError as e:
            raise SubmissionError(
                f"Import API unreachable: {e}",
                context={"endpoint": endpoint, "status_code": None},
            ) from e

        if not response.is_success:
            raise SubmissionError(
                f"Import API failed: {response.status_code} - {_error_detail(response)}",
                context={"endpoint": endpoint, "status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise SubmissionError(
                "Import API returned malformed JSON",
                context={"endpoint": endpoint, "status_code": response.status_code},
            ) from e

        imported = payload.get("imported") if isinstance(payload, dict) else None
        if not isinstance(imported, int) or isinstance(imported, bool):
            raise SubmissionError(
                "Import API response has no 'imported' count",
                context={"endpoint": endpoint, "status_code": response.status_code},
            )

        logger.info("Data submitted: %d of %d records imported", imported, len(records))
        return ImportReceipt(imported=imported, response=payload)


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return "Unknown error"
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return "Unknown error"


class PriceHistoryClient:
    """Reads recently stored prices from the platform's price query endpoint."""

    def __init__(
        self,
        config: SinkConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not config.history_endpoint:
            raise ValueError("PriceHistoryClient requires sink.history_endpoint")
        self._endpoint = config.history_endpoint
        self._days = config.history_days
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout)
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_recent(
        self, market_code: str, end: date | None = None
    ) -> list[PriceRecord]:
        """Stored prices for ``market_code`` over the configured look-back.

        Raises:
            FetchError: Endpoint unreachable, non-2xx, or not a success envelope.
        """
        end = end or date.today()
        params = {
            "marketCode": market_code,
            "startDate": (end - timedelta(days=self._days)).isoformat(),
            "endDate": end.isoformat(),
            "pageSize": HISTORY_PAGE_SIZE,
        }
        try:
            response = await self._client.get(self._endpoint, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise FetchError(
                f"Price history unavailable: {e}",
                context={"url": self._endpoint},
            ) from e

        if not isinstance(payload, dict) or not payload.get("success"):
            raise FetchError(
                "Price history endpoint did not report success",
                context={"url": self._endpoint},
            )

        records = []
        for item in payload.get("data") or []:
            record = _record_from_api(item)
            if record is not None:
                records.append(record)
        return records


def _record_from_api(item: Any) -> PriceRecord | None:
    if not isinstance(item, dict):
        return None
    try:
        return PriceRecord(
            date=str(item["date"])[:10],
            market_code=item["marketCode"],
            instrument_code=item["instrumentCode"],
            price=float(item["price"]),
            currency=item.get("currency", ""),
            volume=item.get("volume"),
            source_url=item.get("sourceUrl") or "",
        )
    except (KeyError, TypeError, ValueError):
        return None
