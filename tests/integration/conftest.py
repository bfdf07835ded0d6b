"""Integration test fixtures — real I/O but no network."""

from __future__ import annotations

from pathlib import Path

import pytest

from carbon_collector.collection.fetcher import SourceFetcher
from carbon_collector.core.config import SinkConfig, StorageConfig
from carbon_collector.scheduler.sink import ImportSink
from carbon_collector.scheduler.store import SqliteRunStore


@pytest.fixture
async def run_store(tmp_path: Path) -> SqliteRunStore:
    """An initialized SqliteRunStore backed by a file in tmp_path."""
    store = SqliteRunStore(StorageConfig(sqlite_path=str(tmp_path / "runs.db")))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def fetcher(fetch_config) -> SourceFetcher:
    async with SourceFetcher(fetch_config) as f:
        yield f


@pytest.fixture
async def import_sink() -> ImportSink:
    async with ImportSink(SinkConfig()) as sink:
        yield sink
