"""carbon_collector.scheduler — Task scheduling, submission, alerting and run storage."""

from carbon_collector.scheduler.alerts import (
    Alerter,
    LoggingAlerter,
    WebhookAlerter,
    build_alerter,
)
from carbon_collector.scheduler.runtime import Runtime, open_runtime
from carbon_collector.scheduler.scheduler import (
    DEFAULT_SCHEDULE,
    MARKET_SCHEDULES,
    TaskScheduler,
    schedule_for_market,
    task_id_for,
)
from carbon_collector.scheduler.sink import (
    ImportSink,
    PriceHistoryClient,
    PriceHistorySource,
    RecordSink,
    to_import_csv,
)
from carbon_collector.scheduler.store import RunStore, SqliteRunStore, create_run_store

__all__ = [
    "Alerter",
    "DEFAULT_SCHEDULE",
    "ImportSink",
    "LoggingAlerter",
    "MARKET_SCHEDULES",
    "PriceHistoryClient",
    "PriceHistorySource",
    "RecordSink",
    "RunStore",
    "Runtime",
    "SqliteRunStore",
    "TaskScheduler",
    "WebhookAlerter",
    "build_alerter",
    "create_run_store",
    "open_runtime",
    "schedule_for_market",
    "task_id_for",
    "to_import_csv",
]
