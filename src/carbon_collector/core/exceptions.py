"""Custom exception hierarchy for carbon-collector."""

from typing import Any


class CarbonCollectorError(Exception):
    """Base exception for all carbon-collector errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(CarbonCollectorError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value (redacted for secrets)
    """


class SourceError(CarbonCollectorError):
    """An external price source could not be used.

    Policy: record failure evidence for the source and continue with the
    adapter's other sources. Never abort the whole collection run.

    Context keys:
        url: str — the source URL
        source: str — the source name
    """


class FetchError(SourceError):
    """Network failure, timeout, or non-2xx response after fetch-layer retries.

    Context keys:
        url: str — the URL that was being fetched
        status_code: int | None — HTTP status code if a response arrived
    """


class RateLimitError(FetchError):
    """Source kept answering HTTP 429 after all retries.

    Policy: backoff and retry (handled by SourceFetcher internally).

    Context keys:
        retry_after: float | None — seconds the source asked us to wait
    """


class ExtractionError(SourceError):
    """Source responded but its page, CSV, or JSON structure is unusable.

    Context keys:
        selector: str | None — the CSS selector that was expected
        reason: str — why extraction failed
    """


class DataValidationError(CarbonCollectorError):
    """A collected batch has hard validation errors.

    Policy: fail the task execution. Nothing from the batch is submitted.

    Context keys:
        task_id: str — the task whose batch failed
        errors: list[str] — the hard errors reported by the adapter
    """


class SubmissionError(CarbonCollectorError):
    """The import sink was unreachable, returned non-2xx, or sent malformed JSON.

    Policy: task-level failure, retried with the scheduler's linear backoff.

    Context keys:
        endpoint: str — the sink URL
        status_code: int | None — HTTP status code if a response arrived
    """


class TaskNotFoundError(CarbonCollectorError):
    """No scheduled task has the requested id.

    Policy: raise to the caller immediately. Never retried.

    Context keys:
        task_id: str — the unknown id
    """


class StorageError(CarbonCollectorError):
    """Run store operation failed.

    Policy: raise immediately.

    Context keys:
        operation: str — "insert", "query", "migrate", etc.
        table: str — the table involved
    """
