"""carbon_collector.core — Foundation types, config, and exceptions."""

from carbon_collector.core.config import (
    AlertsConfig,
    APIConfig,
    CollectorConfig,
    FetchConfig,
    SchedulerConfig,
    SinkConfig,
    StorageConfig,
    load_config,
)
from carbon_collector.core.exceptions import (
    CarbonCollectorError,
    ConfigError,
    DataValidationError,
    ExtractionError,
    FetchError,
    RateLimitError,
    SourceError,
    StorageError,
    SubmissionError,
    TaskNotFoundError,
)
from carbon_collector.core.models import (
    MARKET_CURRENCIES,
    AlertLevel,
    BatchAssessment,
    CollectionResult,
    Currency,
    Evidence,
    HealthState,
    HealthStatus,
    ImportReceipt,
    MarketCode,
    PriceRecord,
    QualityCheckOptions,
    QualityCheckResult,
    RowCheck,
    ScheduledTask,
    SchedulerHealth,
    TaskExecutionResult,
    TaskId,
    ValidationResult,
)

__all__ = [
    # Config
    "AlertsConfig",
    "APIConfig",
    "CollectorConfig",
    "FetchConfig",
    "SchedulerConfig",
    "SinkConfig",
    "StorageConfig",
    "load_config",
    # Exceptions
    "CarbonCollectorError",
    "ConfigError",
    "DataValidationError",
    "ExtractionError",
    "FetchError",
    "RateLimitError",
    "SourceError",
    "StorageError",
    "SubmissionError",
    "TaskNotFoundError",
    # Enums
    "AlertLevel",
    "Currency",
    "HealthState",
    "MarketCode",
    "MARKET_CURRENCIES",
    # Models
    "BatchAssessment",
    "CollectionResult",
    "Evidence",
    "HealthStatus",
    "ImportReceipt",
    "PriceRecord",
    "QualityCheckOptions",
    "QualityCheckResult",
    "RowCheck",
    "ScheduledTask",
    "SchedulerHealth",
    "TaskExecutionResult",
    "TaskId",
    "ValidationResult",
]
