"""Alert delivery for the task scheduler.

Alerting never fails a task: delivery problems are logged and dropped.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from carbon_collector.core.config import AlertsConfig
from carbon_collector.core.models import AlertLevel

logger = logging.getLogger(__name__)

_LOG_LEVELS: dict[AlertLevel, int] = {
    AlertLevel.INFO: logging.INFO,
    AlertLevel.WARNING: logging.WARNING,
    AlertLevel.ERROR: logging.ERROR,
    AlertLevel.CRITICAL: logging.CRITICAL,
}


@runtime_checkable
class Alerter(Protocol):
    async def notify(
        self,
        level: AlertLevel,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...


class LoggingAlerter:
    """Writes alerts to the ``carbon_collector.scheduler.alerts`` logger."""

    async def notify(
        self,
        level: AlertLevel,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        logger.log(
            _LOG_LEVELS[level],
            "ALERT [%s] %s: %s%s",
            level.value.upper(),
            title,
            message,
            f" {metadata}" if metadata else "",
        )


def format_webhook_payload(
    level: AlertLevel,
    title: str,
    message: str,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Chat-robot style text message body."""
    lines = [f"[{level.value.upper()}] {title}", message]
    if metadata:
        lines.append(json.dumps(metadata, ensure_ascii=False, default=str))
    return {"msgtype": "text", "text": {"content": "\n".join(lines)}}


class WebhookAlerter(LoggingAlerter):
    """Logs every alert and posts non-info alerts to a chat webhook."""

    def __init__(self, webhook_url: str, timeout: float = 10.0) -> None:
        self._webhook_url = webhook_url
        self._timeout = timeout

    async def notify(
        self,
        level: AlertLevel,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        await super().notify(level, title, message, metadata)
        if level == AlertLevel.INFO:
            return

        payload = format_webhook_payload(level, title, message, metadata)
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
                response = await client.post(self._webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Failed to deliver alert %r to webhook: %s", title, e)
            return
        if not response.is_success:
            logger.error(
                "Alert webhook returned HTTP %d for %r", response.status_code, title
            )


def build_alerter(config: AlertsConfig) -> Alerter:
    if config.webhook_url:
        return WebhookAlerter(config.webhook_url, timeout=config.timeout)
    return LoggingAlerter()
