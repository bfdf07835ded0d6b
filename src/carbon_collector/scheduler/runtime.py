"""Assemble a fully wired scheduler from configuration and tear it down."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from carbon_collector.adapters import create_adapters
from carbon_collector.collection.fetcher import SourceFetcher
from carbon_collector.collection.renderer import build_renderer
from carbon_collector.core.config import CollectorConfig
from carbon_collector.scheduler.alerts import build_alerter
from carbon_collector.scheduler.scheduler import TaskScheduler
from carbon_collector.scheduler.sink import ImportSink, PriceHistoryClient
from carbon_collector.scheduler.store import SqliteRunStore, create_run_store

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    scheduler: TaskScheduler
    store: SqliteRunStore | None
    fetcher: SourceFetcher


@asynccontextmanager
async def open_runtime(config: CollectorConfig) -> AsyncIterator[Runtime]:
    """Yield a scheduler over every registered adapter.

    The scheduler is not started. On exit pending retries are cancelled and
    every HTTP client, the page renderer and the run store are closed.
    """
    async with AsyncExitStack() as stack:
        store = await create_run_store(config.storage)
        if store is not None:
            stack.push_async_callback(store.close)

        fetcher = SourceFetcher(config.fetch)
        stack.push_async_callback(fetcher.close)
        renderer = build_renderer(config.fetch, fetcher)
        stack.push_async_callback(renderer.close)
        sink = ImportSink(config.sink)
        stack.push_async_callback(sink.close)

        history = None
        if config.sink.history_endpoint:
            history = PriceHistoryClient(config.sink)
            stack.push_async_callback(history.close)

        scheduler = TaskScheduler(
            create_adapters(fetcher, renderer),
            sink,
            config=config.scheduler,
            alerter=build_alerter(config.alerts),
            history_source=history,
            store=store,
        )
        stack.push_async_callback(scheduler.aclose)
        logger.debug("Runtime assembled with %d tasks", len(scheduler.get_tasks()))
        yield Runtime(scheduler=scheduler, store=store, fetcher=fetcher)
