"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from carbon_collector.core.exceptions import ConfigError

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; CarbonDataBot/1.0)"
RENDERERS = ("static", "playwright")


class FetchConfig(BaseModel):
    """Outbound HTTP behaviour shared by every source adapter."""

    model_config = ConfigDict(frozen=True)

    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = 10.0
    retry_count: int = 3
    backoff_base: float = 1.0
    rate_limit: float = 5.0
    renderer: str = "static"

    @field_validator("request_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be > 0")
        return v

    @field_validator("retry_count")
    @classmethod
    def retry_count_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry_count must be >= 0")
        return v

    @field_validator("backoff_base")
    @classmethod
    def backoff_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("backoff_base must be >= 0")
        return v

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("rate_limit must be > 0")
        return v

    @field_validator("renderer")
    @classmethod
    def renderer_known(cls, v: str) -> str:
        if v not in RENDERERS:
            raise ValueError(f"renderer must be one of {', '.join(RENDERERS)}, got: {v!r}")
        return v


class SinkConfig(BaseModel):
    """Where accepted batches are imported, and where prior prices are read."""

    model_config = ConfigDict(frozen=True)

    endpoint: str = "http://localhost:3000/api/import"
    source_label: str = "MCP Automation"
    request_timeout: float = 30.0
    history_endpoint: str | None = None
    history_days: int = 7

    @field_validator("endpoint")
    @classmethod
    def endpoint_is_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"sink endpoint must be an http(s) URL, got: {v!r}")
        return v

    @field_validator("history_days")
    @classmethod
    def history_days_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("history_days must be >= 1")
        return v


class SchedulerConfig(BaseModel):
    """Task retry policy and history retention."""

    model_config = ConfigDict(frozen=True)

    max_task_retries: int = 3
    history_capacity: int = 1000
    retry_delay_seconds: float = 300.0
    timezone: str = "UTC"
    pid_file: str = "./data/carbon-collector.pid"

    @field_validator("max_task_retries")
    @classmethod
    def max_retries_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_task_retries must be >= 0")
        return v

    @field_validator("history_capacity")
    @classmethod
    def capacity_at_least_two(cls, v: int) -> int:
        if v < 2:
            raise ValueError("history_capacity must be >= 2")
        return v


class AlertsConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    webhook_url: str | None = None
    timeout: float = 10.0


class StorageConfig(BaseModel):
    """Run store configuration.

    ``retention_days`` bounds how far back history and evidence are kept
    for each task; 0 keeps everything.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    sqlite_path: str = "./data/carbon_collector.db"
    retention_days: int = 90

    @field_validator("retention_days")
    @classmethod
    def retention_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retention_days must be >= 0")
        return v


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000
    run_scheduler: bool = True


class CollectorConfig(BaseModel):
    """Root configuration for the entire carbon-collector system."""

    model_config = ConfigDict(frozen=True)

    fetch: FetchConfig = FetchConfig()
    sink: SinkConfig = SinkConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    alerts: AlertsConfig = AlertsConfig()
    storage: StorageConfig = StorageConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "CARBON_COLLECTOR_",
) -> CollectorConfig:
    """Build the configuration: built-in defaults, then YAML, then environment.

    ``CARBON_COLLECTOR_FETCH__RETRY_COUNT=5`` sets ``fetch.retry_count``;
    a double underscore descends one level.

    Raises:
        ConfigError: Missing or malformed file, or a value that fails validation.
    """
    yaml_path = _resolve_config_path(config_path)
    base = _load_yaml(yaml_path) if yaml_path is not None else {}
    merged = _merge_env_vars(base, env_prefix)
    try:
        return CollectorConfig.model_validate(merged)
    except ValidationError as e:
        first = e.errors()[0]
        raise ConfigError(
            f"Invalid configuration ({e.error_count()} error(s)): {e}",
            context={
                "field": ".".join(str(loc) for loc in first["loc"]),
                "value": first.get("input"),
            },
        ) from e


DEFAULT_CONFIG_FILE = "carbon-collector.yml"


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Explicit path, else $CARBON_COLLECTOR_CONFIG, else ./carbon-collector.yml if present."""
    for origin, candidate in (
        ("config_path", explicit),
        ("CARBON_COLLECTOR_CONFIG", os.environ.get("CARBON_COLLECTOR_CONFIG")),
    ):
        if not candidate:
            continue
        path = Path(candidate)
        if not path.is_file():
            raise ConfigError(
                f"Config file not found: {candidate} (from {origin})",
                context={"field": origin, "value": candidate},
            )
        return path

    default = Path(DEFAULT_CONFIG_FILE)
    return default if default.is_file() else None


def _load_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Failed to read YAML config {path}: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"YAML config must be a mapping, got {type(data).__name__}",
            context={"field": "config_file", "value": str(path)},
        )
    return data


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Return ``base`` with every ``<prefix>SECTION__KEY`` variable applied.

    ``base`` is not mutated; nested sections on the path are copied.
    """
    result = dict(base)
    for name, raw in os.environ.items():
        if not name.startswith(prefix):
            continue
        path = name[len(prefix) :].lower().split("__")
        # CARBON_COLLECTOR_CONFIG names the file, it is not a setting
        if path == ["config"]:
            continue

        section = result
        for key in path[:-1]:
            child = section.get(key)
            section[key] = dict(child) if isinstance(child, dict) else {}
            section = section[key]
        section[path[-1]] = _auto_cast(raw)
    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """``true``/``false`` to bool, then int, then float, else the string."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value
