"""Run store: persisted execution history and collection evidence."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import ClassVar, Protocol, Sequence, runtime_checkable

import aiosqlite

from carbon_collector.core.config import StorageConfig
from carbon_collector.core.exceptions import StorageError
from carbon_collector.core.models import Evidence, TaskExecutionResult

logger = logging.getLogger(__name__)


@runtime_checkable
class RunStore(Protocol):
    """Persistence interface the scheduler writes run outcomes to."""

    async def save_execution(self, result: TaskExecutionResult) -> None: ...
    async def save_evidence(self, task_id: str, evidence: Sequence[Evidence]) -> None: ...
    async def get_execution_history(
        self, task_id: str | None = None, limit: int | None = None
    ) -> list[TaskExecutionResult]: ...
    async def get_evidence(
        self, task_id: str, limit: int | None = None
    ) -> list[Evidence]: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteRunStore:
    """SQLite implementation of the run store.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS execution_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id TEXT NOT NULL,
                    success INTEGER NOT NULL,
                    record_count INTEGER NOT NULL,
                    errors_json TEXT NOT NULL,
                    warnings_json TEXT NOT NULL,
                    execution_time REAL NOT NULL,
                    timestamp TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS evidence (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id TEXT NOT NULL,
                    source TEXT NOT NULL,
                    url TEXT,
                    timestamp TEXT NOT NULL,
                    success INTEGER NOT NULL,
                    error TEXT,
                    screenshot TEXT,
                    data TEXT,
                    sha256 TEXT,
                    details_json TEXT
                )""",
                "CREATE INDEX IF NOT EXISTS idx_history_task ON execution_history(task_id)",
                "CREATE INDEX IF NOT EXISTS idx_evidence_task ON evidence(task_id)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._retention = (
            timedelta(days=config.retention_days) if config.retention_days else None
        )
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except aiosqlite.Error:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    def _require_db(self, operation: str, table: str) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError(
                "Run store is not initialized",
                context={"operation": operation, "table": table},
            )
        return self._db

    # --- Execution History ---

    async def save_execution(self, result: TaskExecutionResult) -> None:
        db = self._require_db("insert", "execution_history")
        try:
            await db.execute(
                """INSERT INTO execution_history
                   (task_id, success, record_count, errors_json,
                    warnings_json, execution_time, timestamp)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    result.task_id,
                    int(result.success),
                    result.record_count,
                    json.dumps(result.errors, ensure_ascii=False),
                    json.dumps(result.warnings, ensure_ascii=False),
                    result.execution_time,
                    result.timestamp.isoformat(),
                ),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to save execution result: {e}",
                context={"operation": "insert", "table": "execution_history"},
            ) from e

        if self._retention is not None:
            await self.prune(result.timestamp - self._retention, task_id=result.task_id)

    async def get_execution_history(
        self, task_id: str | None = None, limit: int | None = None
    ) -> list[TaskExecutionResult]:
        """Stored results, oldest first. ``limit`` keeps the most recent N."""
        db = self._require_db("query", "execution_history")
        sql = "SELECT * FROM execution_history"
        params: list = []
        if task_id is not None:
            sql += " WHERE task_id = ?"
            params.append(task_id)
        sql += " ORDER BY id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        try:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to query execution history: {e}",
                context={"operation": "query", "table": "execution_history"},
            ) from e

        return [
            TaskExecutionResult(
                task_id=row["task_id"],
                success=bool(row["success"]),
                record_count=row["record_count"],
                errors=json.loads(row["errors_json"]),
                warnings=json.loads(row["warnings_json"]),
                execution_time=row["execution_time"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
            )
            for row in reversed(rows)
        ]

    # --- Evidence ---

    async def save_evidence(self, task_id: str, evidence: Sequence[Evidence]) -> None:
        if not evidence:
            return
        db = self._require_db("insert", "evidence")
        try:
            await db.executemany(
                """INSERT INTO evidence
                   (task_id, source, url, timestamp, success, error,
                    screenshot, data, sha256, details_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        task_id,
                        item.source,
                        item.url,
                        item.timestamp.isoformat(),
                        int(item.success),
                        item.error,
                        item.screenshot,
                        item.data,
                        item.sha256,
                        json.dumps(item.details, ensure_ascii=False, default=str),
                    )
                    for item in evidence
                ],
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to save evidence: {e}",
                context={"operation": "insert", "table": "evidence"},
            ) from e

    async def get_evidence(self, task_id: str, limit: int | None = None) -> list[Evidence]:
        db = self._require_db("query", "evidence")
        sql = "SELECT * FROM evidence WHERE task_id = ? ORDER BY id DESC"
        params: list = [task_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        try:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to query evidence: {e}",
                context={"operation": "query", "table": "evidence"},
            ) from e

        return [
            Evidence(
                source=row["source"],
                url=row["url"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
                success=bool(row["success"]),
                error=row["error"],
                screenshot=row["screenshot"],
                data=row["data"],
                sha256=row["sha256"],
                details=json.loads(row["details_json"] or "{}"),
            )
            for row in reversed(rows)
        ]

    # --- Retention ---

    async def prune(self, before: datetime, task_id: str | None = None) -> int:
        """Delete history and evidence recorded before ``before``.

        Runs automatically after each saved execution, scoped to that task and
        measured back from its timestamp. Returns the number of rows removed.
        """
        db = self._require_db("delete", "execution_history")
        cutoff = before.isoformat()
        removed = 0
        try:
            for table in ("execution_history", "evidence"):
                sql = f"DELETE FROM {table} WHERE timestamp < ?"
                params: list = [cutoff]
                if task_id is not None:
                    sql += " AND task_id = ?"
                    params.append(task_id)
                cursor = await db.execute(sql, params)
                removed += cursor.rowcount
            await db.commit()
        except aiosqlite.Error as e:
            raise StorageError(
                f"Failed to prune run store: {e}",
                context={"operation": "delete", "cutoff": cutoff},
            ) from e
        if removed:
            logger.info("Pruned %d run store rows older than %s", removed, cutoff)
        return removed


async def create_run_store(config: StorageConfig) -> SqliteRunStore | None:
    """Create and initialize the run store, or None when persistence is disabled."""
    if not config.enabled:
        return None
    store = SqliteRunStore(config)
    await store.initialize()
    return store
