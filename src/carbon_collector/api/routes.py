"""FastAPI route definitions for the operator status surface."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

import carbon_collector
from carbon_collector.api.deps import get_scheduler, get_store
from carbon_collector.api.schemas import (
    ErrorResponse,
    EvidenceResponse,
    HealthResponse,
    HistoryResponse,
    TaskListResponse,
    TaskResponse,
)
from carbon_collector.core.models import TaskExecutionResult
from carbon_collector.scheduler.scheduler import TaskScheduler
from carbon_collector.scheduler.store import RunStore

router = APIRouter()

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Unknown task id"}}


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(
    scheduler: TaskScheduler = Depends(get_scheduler),
    store: RunStore | None = Depends(get_store),
):
    """Aggregate adapter health plus scheduler and store status."""
    health = await scheduler.get_health_status()
    return HealthResponse(
        status=health.scheduler,
        version=carbon_collector.__version__,
        running=scheduler.is_running,
        store_ok=await store.health_check() if store is not None else None,
        tasks=health.tasks,
    )


# -- Tasks --


@router.get("/tasks", response_model=TaskListResponse)
async def list_tasks(scheduler: TaskScheduler = Depends(get_scheduler)):
    return TaskListResponse(
        items=[TaskResponse.from_task(task) for task in scheduler.get_tasks()]
    )


@router.post("/tasks/run", response_model=list[TaskExecutionResult])
async def run_all_tasks(scheduler: TaskScheduler = Depends(get_scheduler)):
    """Run every enabled task now, sequentially."""
    return await scheduler.execute_all_tasks()


@router.get("/tasks/{task_id}", response_model=TaskResponse, responses=_NOT_FOUND)
async def get_task(task_id: str, scheduler: TaskScheduler = Depends(get_scheduler)):
    return TaskResponse.from_task(scheduler.get_task(task_id))


@router.post("/tasks/{task_id}/enable", response_model=TaskResponse, responses=_NOT_FOUND)
async def enable_task(task_id: str, scheduler: TaskScheduler = Depends(get_scheduler)):
    return TaskResponse.from_task(scheduler.enable_task(task_id))


@router.post("/tasks/{task_id}/disable", response_model=TaskResponse, responses=_NOT_FOUND)
async def disable_task(task_id: str, scheduler: TaskScheduler = Depends(get_scheduler)):
    return TaskResponse.from_task(scheduler.disable_task(task_id))


@router.post("/tasks/{task_id}/run", response_model=TaskExecutionResult, responses=_NOT_FOUND)
async def run_task(task_id: str, scheduler: TaskScheduler = Depends(get_scheduler)):
    """Execute one task immediately, outside its cron cadence."""
    return await scheduler.execute_task(task_id)


# -- History --


@router.get("/history", response_model=HistoryResponse)
async def execution_history(
    task_id: str | None = Query(None, description="Filter by task id"),
    limit: int = Query(50, ge=1, le=1000),
    persisted: bool = Query(False, description="Read from the run store"),
    scheduler: TaskScheduler = Depends(get_scheduler),
    store: RunStore | None = Depends(get_store),
):
    """Recent execution results, from memory or from the run store."""
    if persisted and store is not None:
        items = await store.get_execution_history(task_id=task_id, limit=limit)
        return HistoryResponse(source="store", items=items)
    items = scheduler.get_execution_history(task_id)[-limit:]
    return HistoryResponse(source="memory", items=items)


# -- Evidence --


@router.get("/evidence/{task_id}", response_model=EvidenceResponse, responses=_NOT_FOUND)
async def task_evidence(
    task_id: str,
    limit: int = Query(50, ge=1, le=1000),
    screenshots: bool = Query(False, description="Include base64 screenshots"),
    scheduler: TaskScheduler = Depends(get_scheduler),
    store: RunStore | None = Depends(get_store),
):
    """Provenance recorded for a task's submitted batches."""
    scheduler.get_task(task_id)
    if store is None:
        raise HTTPException(status_code=404, detail="Run store disabled; no evidence kept")
    items = await store.get_evidence(task_id, limit=limit)
    if not screenshots:
        items = [
            item.model_copy(update={"screenshot": None}) if item.screenshot else item
            for item in items
        ]
    return EvidenceResponse(task_id=task_id, items=items)
