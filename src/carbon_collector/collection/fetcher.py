"""Rate-limited async HTTP fetcher shared by all source adapters."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx
from aiolimiter import AsyncLimiter

from carbon_collector.core.config import FetchConfig
from carbon_collector.core.exceptions import ExtractionError, FetchError, RateLimitError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({500, 502, 503, 504})


class SourceFetcher:
    """Rate-limited async client for external price sources.

    Every request is bounded by a timeout and retried a fixed number of
    times with exponential backoff (``backoff_base * 2**attempt``). This is
    the fetch-layer retry; task-level retries live in the scheduler.

    Use via ``async with SourceFetcher(config) as fetcher:``.
    """

    def __init__(
        self,
        config: FetchConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._limiter = AsyncLimiter(max_rate=config.rate_limit, time_period=1.0)
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": config.user_agent},
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        )

    @property
    def config(self) -> FetchConfig:
        return self._config

    async def __aenter__(self) -> SourceFetcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    # --- Public helpers ---

    async def get_text(
        self,
        url: str,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> str:
        response = await self.request("GET", url, timeout=timeout, headers=headers)
        return response.text

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """GET a JSON document.

        Raises:
            FetchError: Network failure or non-2xx after retries.
            ExtractionError: Body is not valid JSON.
        """
        response = await self.request(
            "GET",
            url,
            params=params,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise ExtractionError(
                f"Malformed JSON from {url}: {e}",
                context={"url": url, "reason": "json_decode"},
            ) from e

    async def probe(
        self,
        url: str,
        method: str = "HEAD",
        timeout: float = 5.0,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Single unretried request used by health checks.

        Transport errors propagate as ``httpx.HTTPError`` so callers can tell
        "unreachable" apart from "reachable but unhappy".
        """
        await self._limiter.acquire()
        return await self._client.request(
            method, url, params=params, timeout=httpx.Timeout(timeout)
        )

    # --- Retry loop ---

    async def request(
        self,
        method: str,
        url: str,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute an HTTP request with rate limiting and retry logic.

        Retry policy:
            - HTTP 429: wait for Retry-After (or the backoff delay), retry.
            - HTTP 5xx: retry with exponential backoff.
            - Other non-2xx: raise immediately (no retry).
            - Connection errors and timeouts: retry with exponential backoff.

        Returns:
            httpx.Response with a 2xx status.

        Raises:
            RateLimitError: If retries are exhausted on 429 responses.
            FetchError: If retries are exhausted on anything else, or the
                status is not retryable.
        """
        retries = self._config.retry_count
        if timeout is not None:
            kwargs["timeout"] = httpx.Timeout(timeout)
        if kwargs.get("headers") is None:
            kwargs.pop("headers", None)

        for attempt in range(retries + 1):
            delay = self._config.backoff_base * 2**attempt
            try:
                await self._limiter.acquire()
                response = await self._client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                if attempt < retries:
                    logger.warning(
                        "%s on %s, retrying in %.1fs (attempt %d/%d)",
                        type(e).__name__, url, delay, attempt + 1, retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise FetchError(
                    f"{type(e).__name__} after {retries} retries: {url}",
                    context={"url": url, "status_code": None},
                ) from e

            if response.is_success:
                return response

            if response.status_code == 429:
                retry_after = _retry_after(response, delay)
                if attempt < retries:
                    logger.warning(
                        "Rate limited (429) on %s, waiting %.1fs (attempt %d/%d)",
                        url, retry_after, attempt + 1, retries,
                    )
                    await asyncio.sleep(retry_after)
                    continue
                raise RateLimitError(
                    f"Rate limit exceeded after {retries} retries: {url}",
                    context={"url": url, "status_code": 429, "retry_after": retry_after},
                )

            if response.status_code in _RETRYABLE_STATUS:
                if attempt < retries:
                    logger.warning(
                        "Server error %d on %s, retrying in %.1fs (attempt %d/%d)",
                        response.status_code, url, delay, attempt + 1, retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise FetchError(
                    f"Server error {response.status_code} after retries: {url}",
                    context={"url": url, "status_code": response.status_code},
                )

            raise FetchError(
                f"HTTP {response.status_code} from {url}",
                context={"url": url, "status_code": response.status_code},
            )

        # Unreachable: the final attempt always returns or raises
        raise FetchError(f"Request failed: {url}", context={"url": url})


def _retry_after(response: httpx.Response, default: float) -> float:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        return default
