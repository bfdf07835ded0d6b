"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from carbon_collector.core.config import CollectorConfig
from carbon_collector.scheduler.scheduler import TaskScheduler
from carbon_collector.scheduler.store import RunStore


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: CollectorConfig
    scheduler: TaskScheduler
    store: RunStore | None = None


def get_scheduler(request: Request) -> TaskScheduler:
    return request.app.state.app_state.scheduler


def get_store(request: Request) -> RunStore | None:
    """Dependency: retrieve the run store, None when persistence is off."""
    return request.app.state.app_state.store
