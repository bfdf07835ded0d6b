"""Page rendering capability used by HTML-table adapters.

Adapters only depend on ``PageRenderer.render_and_extract``; how the HTML
was obtained (plain GET, headless browser) is an implementation detail.
Tests inject canned rows through a fake renderer.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from bs4 import BeautifulSoup
from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from carbon_collector.collection.evidence import EvidenceCollector
from carbon_collector.collection.fetcher import SourceFetcher
from carbon_collector.core.config import FetchConfig
from carbon_collector.core.exceptions import ExtractionError, FetchError
from carbon_collector.core.models import Evidence

logger = logging.getLogger(__name__)


@dataclass
class RenderedPage:
    """Table rows extracted from a page, plus whatever proof was captured.

    ``screenshot`` is base64 PNG text; ``evidence`` holds the capture
    outcomes (a failed screenshot included).
    """

    url: str
    rows: list[list[str]] = field(default_factory=list)
    screenshot: str | None = None
    html: str | None = None
    evidence: list[Evidence] = field(default_factory=list)


@runtime_checkable
class PageRenderer(Protocol):
    """Fetch a page and extract the cell text of every row under a selector."""

    async def render_and_extract(
        self,
        url: str,
        selector: str,
        timeout: float | None = None,
    ) -> RenderedPage: ...


def extract_table_rows(html: str, selector: str) -> list[list[str]]:
    """Return the ``<td>`` texts of every row inside the first ``selector`` match.

    Rows without data cells (e.g. ``<th>`` header rows) are omitted.

    Raises:
        ExtractionError: If nothing on the page matches ``selector``.
    """
    soup = BeautifulSoup(html, "html.parser")
    container = soup.select_one(selector)
    if container is None:
        raise ExtractionError(
            f"Selector {selector!r} not found on page",
            context={"selector": selector, "reason": "selector_missing"},
        )

    rows: list[list[str]] = []
    for tr in container.find_all("tr"):
        cells = [td.get_text(" ", strip=True) for td in tr.find_all("td")]
        if cells:
            rows.append(cells)
    return rows


class StaticPageRenderer:
    """Renderer for server-rendered pages: plain GET followed by BeautifulSoup.

    Produces no screenshot; the HTML itself is kept as evidence.
    """

    def __init__(self, fetcher: SourceFetcher, timeout: float | None = None) -> None:
        self._fetcher = fetcher
        self._timeout = timeout

    async def close(self) -> None:
        """Nothing to release; the fetcher owns the HTTP client."""

    async def render_and_extract(
        self,
        url: str,
        selector: str,
        timeout: float | None = None,
    ) -> RenderedPage:
        html = await self._fetcher.get_text(url, timeout=timeout or self._timeout)
        rows = extract_table_rows(html, selector)
        logger.debug("Extracted %d rows from %s (%s)", len(rows), url, selector)
        return RenderedPage(url=url, rows=rows, html=html)


class PlaywrightPageRenderer:
    """Renderer for JavaScript-built tables, driving headless Chromium.

    Waits for network idle and for ``selector`` to appear, takes a full-page
    screenshot as evidence, then extracts rows from the rendered DOM. The
    browser is launched on first use and shared by every render until
    ``close()``.
    """

    def __init__(self, config: FetchConfig, browser: Browser | None = None) -> None:
        self._config = config
        self._browser = browser
        self._playwright: Playwright | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> PlaywrightPageRenderer:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _ensure_browser(self) -> Browser:
        async with self._lock:
            if self._browser is None:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(headless=True)
                logger.info("Launched headless Chromium for page rendering")
            return self._browser

    async def close(self) -> None:
        """Close the browser and stop Playwright, if this renderer started them."""
        if self._playwright is None:
            return
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        await self._playwright.stop()
        self._playwright = None

    async def render_and_extract(
        self,
        url: str,
        selector: str,
        timeout: float | None = None,
    ) -> RenderedPage:
        """Render ``url`` and extract rows under ``selector``.

        Raises:
            FetchError: Navigation failed or the selector never appeared in time.
            ExtractionError: The rendered page has no ``selector`` match.
        """
        timeout_ms = (timeout or self._config.request_timeout) * 1000
        browser = await self._ensure_browser()
        proof = EvidenceCollector()
        page = await browser.new_page(user_agent=self._config.user_agent)
        try:
            await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
            await page.wait_for_selector(selector, timeout=timeout_ms)
            screenshot = await proof.capture_screenshot(page, url, url)
            html = await page.content()
        except PlaywrightError as e:
            raise FetchError(
                f"Rendering {url} failed: {e.message}",
                context={"url": url, "selector": selector, "status_code": None},
            ) from e
        finally:
            await page.close()

        rows = extract_table_rows(html, selector)
        logger.debug("Rendered %d rows from %s (%s)", len(rows), url, selector)
        return RenderedPage(
            url=url,
            rows=rows,
            html=html,
            screenshot=screenshot,
            evidence=proof.items,
        )


def build_renderer(
    config: FetchConfig,
    fetcher: SourceFetcher,
) -> StaticPageRenderer | PlaywrightPageRenderer:
    """The renderer selected by ``fetch.renderer``."""
    if config.renderer == "playwright":
        return PlaywrightPageRenderer(config)
    return StaticPageRenderer(fetcher)
