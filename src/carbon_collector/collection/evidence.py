"""Provenance capture for collection runs."""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from typing import Any, Protocol

from carbon_collector.core.models import Evidence

logger = logging.getLogger(__name__)

DEFAULT_EXCERPT_CHARS = 2000


class ScreenshotPage(Protocol):
    """Anything with an async ``screenshot()`` returning PNG bytes."""

    async def screenshot(self, *, full_page: bool = ...) -> bytes: ...


def payload_sha256(content: bytes | str) -> str:
    """Hex SHA-256 of a raw payload."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def _serialize(payload: Any) -> str:
    if isinstance(payload, bytes):
        return payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, ensure_ascii=False, default=str)


class EvidenceCollector:
    """Append-only evidence list owned by one collection run.

    Successful and failed captures are recorded the same way, so a capture
    that itself fails still leaves a trace. There is no retry logic here.
    """

    def __init__(self, excerpt_chars: int = DEFAULT_EXCERPT_CHARS) -> None:
        self._items: list[Evidence] = []
        self._excerpt_chars = excerpt_chars

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[Evidence]:
        return list(self._items)

    def add(self, item: Evidence) -> Evidence:
        self._items.append(item)
        return item

    def clear(self) -> None:
        self._items = []

    async def capture_screenshot(
        self,
        page: ScreenshotPage,
        source: str,
        url: str | None = None,
    ) -> str | None:
        """Screenshot ``page`` and record it.

        Returns the base64 image, or None if the capture failed (the failure
        is recorded as evidence instead of raised).
        """
        try:
            png = await page.screenshot(full_page=True)
        except Exception as e:
            logger.warning("Screenshot of %s failed: %s", source, e)
            self.record_failure(source, url, e)
            return None
        return self.record_screenshot(source, url, png).screenshot

    def record_screenshot(self, source: str, url: str | None, png: bytes) -> Evidence:
        return self.add(
            Evidence(
                source=source,
                url=url,
                screenshot=base64.b64encode(png).decode("ascii"),
                success=True,
                sha256=payload_sha256(png),
            )
        )

    def record_response(
        self,
        source: str,
        url: str | None,
        payload: Any,
        success: bool = True,
        error: str | None = None,
        **details: Any,
    ) -> Evidence:
        """Record a raw API/HTML/CSV payload, keeping an excerpt and its hash."""
        text = _serialize(payload)
        return self.add(
            Evidence(
                source=source,
                url=url,
                data=text[: self._excerpt_chars],
                success=success,
                error=error,
                sha256=payload_sha256(text),
                details={"content_length": len(text), **details},
            )
        )

    def record_failure(
        self,
        source: str,
        url: str | None,
        error: BaseException | str,
        **details: Any,
    ) -> Evidence:
        return self.add(
            Evidence(
                source=source,
                url=url,
                success=False,
                error=str(error) or type(error).__name__,
                details=details,
            )
        )
