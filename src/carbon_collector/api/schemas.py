"""API-specific response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from carbon_collector.core.models import (
    Evidence,
    HealthState,
    HealthStatus,
    ScheduledTask,
    TaskExecutionResult,
)


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Health --


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: HealthState
    version: str
    running: bool
    store_ok: bool | None = None
    tasks: dict[str, HealthStatus]


# -- Tasks --


class TaskResponse(BaseModel):
    """A scheduled task in API response format."""

    id: str
    adapter: str
    market_code: str
    schedule: str
    enabled: bool
    retry_count: int
    max_retries: int
    last_run: datetime | None = None
    next_run: datetime | None = None

    @classmethod
    def from_task(cls, task: ScheduledTask) -> TaskResponse:
        return cls(
            id=task.id,
            adapter=task.adapter.name,
            market_code=str(task.adapter.market_code),
            schedule=task.schedule,
            enabled=task.enabled,
            retry_count=task.retry_count,
            max_retries=task.max_retries,
            last_run=task.last_run,
            next_run=task.next_run,
        )


class TaskListResponse(BaseModel):
    items: list[TaskResponse]


# -- History --


class HistoryResponse(BaseModel):
    """Execution results, oldest first."""

    source: str  # "memory" | "store"
    items: list[TaskExecutionResult]


# -- Evidence --


class EvidenceResponse(BaseModel):
    """Stored provenance for one task, oldest first."""

    task_id: str
    items: list[Evidence]
