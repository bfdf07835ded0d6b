"""Tests for the FastAPI REST API module."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

import carbon_collector
from carbon_collector.api.app import create_app
from carbon_collector.core.config import CollectorConfig, StorageConfig
from carbon_collector.core.exceptions import SubmissionError
from carbon_collector.core.models import (
    Evidence,
    HealthState,
    ImportReceipt,
    MarketCode,
    TaskExecutionResult,
)
from carbon_collector.scheduler.scheduler import TaskScheduler


# -- Fixtures --


@pytest.fixture
def config(tmp_path):
    return CollectorConfig(storage=StorageConfig(sqlite_path=str(tmp_path / "test.db")))


@pytest.fixture
def sink():
    sink = AsyncMock()
    sink.submit.return_value = ImportReceipt(imported=1)
    return sink


@pytest.fixture
def scheduler(fake_adapter, make_record, sink):
    adapters = [
        fake_adapter(MarketCode.CEA, records=[make_record()]),
        fake_adapter(MarketCode.CDR, health=HealthState.UNHEALTHY),
    ]
    return TaskScheduler(adapters, sink, scheduler=MagicMock())


@pytest.fixture
def store():
    store = AsyncMock()
    store.health_check.return_value = True
    store.get_execution_history.return_value = [
        TaskExecutionResult(
            task_id="cea-daily",
            success=True,
            record_count=2,
            timestamp=datetime(2024, 1, 15, 9, 30, tzinfo=UTC),
        )
    ]
    return store


@pytest.fixture
def client(config, scheduler, store):
    app = create_app(config=config, scheduler=scheduler, store=store)
    with TestClient(app) as c:
        yield c


# -- Health --


class TestHealth:
    def test_degraded_when_half_healthy(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "degraded"
        assert data["version"] == carbon_collector.__version__
        assert data["running"] is False
        assert data["store_ok"] is True
        assert data["tasks"]["cdr-daily"]["status"] == "unhealthy"

    def test_without_store(self, config, scheduler):
        app = create_app(config=config, scheduler=scheduler)
        with TestClient(app) as c:
            assert c.get("/api/health").json()["store_ok"] is None


# -- Tasks --


class TestTasks:
    def test_list(self, client):
        items = client.get("/api/tasks").json()["items"]
        assert [t["id"] for t in items] == ["cea-daily", "cdr-daily"]
        assert items[0]["adapter"] == "Fake CEA"
        assert items[0]["market_code"] == "CEA"
        assert items[0]["schedule"] == "30 9 * * 1-5"
        assert items[0]["max_retries"] == 3

    def test_get_one(self, client):
        resp = client.get("/api/tasks/cdr-daily")
        assert resp.status_code == 200
        assert resp.json()["schedule"] == "0 1 * * *"

    def test_unknown_task_is_404(self, client):
        resp = client.get("/api/tasks/eu-daily")
        assert resp.status_code == 404
        assert resp.json() == {
            "error": "TaskNotFoundError",
            "detail": "Task not found: eu-daily",
        }

    def test_disable_then_enable(self, client, scheduler):
        resp = client.post("/api/tasks/cea-daily/disable")
        assert resp.status_code == 200
        assert resp.json()["enabled"] is False
        assert not scheduler.get_task("cea-daily").enabled

        resp = client.post("/api/tasks/cea-daily/enable")
        assert resp.json()["enabled"] is True

    def test_enable_unknown_is_404(self, client):
        assert client.post("/api/tasks/nope/enable").status_code == 404

    def test_run_one(self, client, sink):
        resp = client.post("/api/tasks/cea-daily/run")
        assert resp.status_code == 200
        data = resp.json()
        assert data["task_id"] == "cea-daily"
        assert data["success"] is True
        assert data["record_count"] == 1
        sink.submit.assert_awaited_once()

    def test_run_unknown_is_404(self, client):
        assert client.post("/api/tasks/uk-daily/run").status_code == 404

    def test_run_all_skips_disabled(self, client):
        client.post("/api/tasks/cdr-daily/disable")
        results = client.post("/api/tasks/run").json()
        assert [r["task_id"] for r in results] == ["cea-daily"]


# -- History --


class TestHistory:
    def test_memory_history(self, client):
        client.post("/api/tasks/cea-daily/run")
        client.post("/api/tasks/cea-daily/run")
        data = client.get("/api/history", params={"limit": 1}).json()
        assert data["source"] == "memory"
        assert len(data["items"]) == 1
        assert data["items"][0]["task_id"] == "cea-daily"

    def test_persisted_history(self, client, store):
        data = client.get(
            "/api/history", params={"persisted": True, "task_id": "cea-daily", "limit": 5}
        ).json()
        assert data["source"] == "store"
        assert data["items"][0]["record_count"] == 2
        store.get_execution_history.assert_awaited_once_with(task_id="cea-daily", limit=5)

    def test_limit_bounds(self, client):
        assert client.get("/api/history", params={"limit": 0}).status_code == 422
        assert client.get("/api/history", params={"limit": 1001}).status_code == 422


# -- Evidence --


class TestEvidence:
    def test_screenshots_omitted_by_default(self, client, store):
        store.get_evidence.return_value = [
            Evidence(
                source="CEA CNEEEX", url="http://www.cneeex.com/", success=True, screenshot="cG5n"
            ),
            Evidence(source="CEA CNEEEX", success=False, error="HTTP 503"),
        ]
        resp = client.get("/api/evidence/cea-daily", params={"limit": 5})
        assert resp.status_code == 200
        data = resp.json()
        assert data["task_id"] == "cea-daily"
        assert [item["screenshot"] for item in data["items"]] == [None, None]
        assert data["items"][1]["error"] == "HTTP 503"
        store.get_evidence.assert_awaited_once_with("cea-daily", limit=5)

    def test_screenshots_on_request(self, client, store):
        store.get_evidence.return_value = [
            Evidence(source="CEA CNEEEX", success=True, screenshot="cG5n"),
        ]
        data = client.get("/api/evidence/cea-daily", params={"screenshots": True}).json()
        assert data["items"][0]["screenshot"] == "cG5n"

    def test_unknown_task_is_404(self, client, store):
        resp = client.get("/api/evidence/eu-daily")
        assert resp.status_code == 404
        store.get_evidence.assert_not_awaited()

    def test_no_store_is_404(self, config, scheduler):
        app = create_app(config=config, scheduler=scheduler)
        with TestClient(app) as c:
            resp = c.get("/api/evidence/cea-daily")
        assert resp.status_code == 404
        assert "Run store disabled" in resp.json()["detail"]


# -- Error Mapping --


class TestErrorMapping:
    def test_submission_error_is_502(self, config, scheduler, monkeypatch):
        monkeypatch.setattr(
            scheduler,
            "execute_task",
            AsyncMock(side_effect=SubmissionError("Import API unreachable")),
        )
        app = create_app(config=config, scheduler=scheduler)
        with TestClient(app) as c:
            resp = c.post("/api/tasks/cea-daily/run")
        assert resp.status_code == 502
        assert resp.json()["error"] == "SubmissionError"
