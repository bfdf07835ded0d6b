"""Task scheduler: binds each adapter to a cron cadence and runs the pipeline.

One execution is collect → validate → diff against stored prices → submit.
Failed executions are retried with a linear task-level backoff
(``retry_count × retry_delay``); once ``max_retries`` consecutive failures
accumulate an alert is emitted and the task waits for its next cron tick.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import date
from typing import Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from carbon_collector.adapters.base import SourceAdapter
from carbon_collector.core.config import SchedulerConfig
from carbon_collector.core.exceptions import (
    CarbonCollectorError,
    DataValidationError,
    StorageError,
    TaskNotFoundError,
)
from carbon_collector.core.models import (
    AlertLevel,
    Evidence,
    HealthState,
    HealthStatus,
    ImportReceipt,
    PriceRecord,
    ScheduledTask,
    SchedulerHealth,
    TaskExecutionResult,
    TaskId,
    utcnow,
)
from carbon_collector.quality.batch import compare_with_prior
from carbon_collector.scheduler.alerts import Alerter, LoggingAlerter
from carbon_collector.scheduler.sink import PriceHistorySource, RecordSink
from carbon_collector.scheduler.store import RunStore

logger = logging.getLogger(__name__)

# Cron cadences (UTC), timed after each exchange's local close
MARKET_SCHEDULES: dict[str, str] = {
    "CEA": "30 9 * * 1-5",
    "CCER": "45 9 * * 1-5",
    "CCA": "0 23 * * 1-5",
    "CDR": "0 1 * * *",
}
DEFAULT_SCHEDULE = "0 2 * * *"


def schedule_for_market(market_code: str) -> str:
    return MARKET_SCHEDULES.get(str(market_code), DEFAULT_SCHEDULE)


def task_id_for(market_code: str) -> TaskId:
    return f"{str(market_code).lower()}-daily"


class TaskScheduler:
    """Runs one daily collection task per adapter.

    Args:
        adapters: One task is created per adapter, keyed ``<market>-daily``.
        sink: Destination for validated batches.
        config: Retry, history and timezone settings.
        alerter: Receives retry-exhaustion alerts.
        history_source: Optional reader of already-stored prices. Differences
            against it are reported as warnings only.
        store: Optional run store persisting results and evidence.
        scheduler: APScheduler instance; one is created when omitted.
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        sink: RecordSink,
        config: SchedulerConfig | None = None,
        alerter: Alerter | None = None,
        history_source: PriceHistorySource | None = None,
        store: RunStore | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._config = config or SchedulerConfig()
        self._sink = sink
        self._alerter = alerter or LoggingAlerter()
        self._history_source = history_source
        self._store = store
        self._scheduler = scheduler or AsyncIOScheduler(timezone=self._config.timezone)
        self._running = False
        self._triggers: dict[TaskId, CronTrigger] = {}
        self._pending_retries: set[asyncio.Task] = set()
        self._history: list[TaskExecutionResult] = []

        self._tasks: dict[TaskId, ScheduledTask] = {}
        for adapter in adapters:
            task = ScheduledTask(
                id=task_id_for(adapter.market_code),
                adapter=adapter,
                schedule=schedule_for_market(adapter.market_code),
                max_retries=self._config.max_task_retries,
            )
            self._tasks[task.id] = task

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending_retries(self) -> int:
        return sum(1 for t in self._pending_retries if not t.done())

    # --- Lifecycle ---

    def start(self) -> None:
        """Register a cron job for every enabled task. Idempotent."""
        if self._running:
            logger.info("Task scheduler is already running")
            return

        logger.info("Starting task scheduler...")
        for task in self._tasks.values():
            if task.enabled:
                self._schedule(task)
        self._scheduler.start()
        self._running = True
        logger.info("Task scheduler started with %d tasks", len(self._tasks))

    def stop(self) -> None:
        """Stop triggering new runs. In-flight executions are left to finish."""
        if not self._running:
            return
        self._scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Task scheduler stopped")

    async def aclose(self) -> None:
        """Stop the scheduler and cancel retries that have not fired yet."""
        self.stop()
        pending = [t for t in self._pending_retries if not t.done()]
        for retry in pending:
            retry.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending_retries.clear()

    def _schedule(self, task: ScheduledTask) -> None:
        trigger = CronTrigger.from_crontab(task.schedule, timezone=self._config.timezone)
        self._triggers[task.id] = trigger
        self._scheduler.add_job(
            self._run_scheduled,
            trigger=trigger,
            args=[task.id],
            id=task.id,
            replace_existing=True,
            misfire_grace_time=3600,
            coalesce=True,
        )
        task.next_run = trigger.get_next_fire_time(None, utcnow())
        logger.info(
            "Scheduled task %s: %s (next: %s)",
            task.id,
            task.schedule,
            task.next_run.isoformat() if task.next_run else "never",
        )

    def _unschedule(self, task_id: TaskId) -> None:
        self._triggers.pop(task_id, None)
        if self._scheduler.get_job(task_id) is not None:
            self._scheduler.remove_job(task_id)

    async def _run_scheduled(self, task_id: TaskId) -> None:
        task = self._tasks[task_id]
        if not task.enabled:
            return
        await self.execute_task(task_id)
        trigger = self._triggers.get(task_id)
        if trigger is not None:
            task.next_run = trigger.get_next_fire_time(None, utcnow())

    # --- Execution ---

    async def execute_task(self, task_id: TaskId) -> TaskExecutionResult:
        """Run one collection cycle for ``task_id``.

        Pipeline failures are captured in the returned result, never raised.

        Raises:
            TaskNotFoundError: ``task_id`` is not a registered task.
        """
        task = self.get_task(task_id)
        adapter = task.adapter
        started = time.perf_counter()
        logger.info("Executing task: %s (%s)", task_id, adapter.name)

        errors: list[str] = []
        warnings: list[str] = []
        record_count = 0
        success = False

        try:
            collection = await adapter.collect_data()
            validation = adapter.validate_data(collection.records)
            warnings.extend(validation.warnings)
            if not validation.is_valid:
                errors.extend(validation.errors)
                raise DataValidationError(
                    f"Data validation failed: {', '.join(validation.errors)}",
                    context={"task_id": task_id, "errors": validation.errors},
                )

            warnings.extend(await self._prior_warnings(adapter, collection.records))
            await self.submit_data_to_api(collection.records, collection.evidence, task_id)

            record_count = len(collection.records)
            success = True
            task.retry_count = 0
            task.last_run = utcnow()
            logger.info("Task %s completed: %d records collected", task_id, record_count)

        except CarbonCollectorError as e:
            errors.append(str(e))
            self._on_failure(task, str(e))
        except Exception as e:
            logger.exception("Unexpected error in task %s", task_id)
            errors.append(str(e) or type(e).__name__)
            self._on_failure(task, errors[-1])

        result = TaskExecutionResult(
            task_id=task_id,
            success=success,
            record_count=record_count,
            errors=errors,
            warnings=warnings,
            execution_time=time.perf_counter() - started,
        )
        await self._record(result)

        if not success and task.retries_exhausted:
            await self._alert_exhausted(task, errors[-1] if errors else "unknown error")
        return result

    async def submit_data_to_api(
        self,
        records: Sequence[PriceRecord],
        evidence: Sequence[Evidence],
        task_id: TaskId | None = None,
    ) -> ImportReceipt:
        """Submit a validated batch to the sink and archive its evidence.

        Raises:
            SubmissionError: The sink rejected or never received the batch.
        """
        receipt = await self._sink.submit(records)
        if self._store is not None and task_id is not None:
            try:
                await self._store.save_evidence(task_id, evidence)
            except StorageError as e:
                logger.error("Evidence for %s not persisted: %s", task_id, e)
        return receipt

    async def execute_all_tasks(self) -> list[TaskExecutionResult]:
        """Run every enabled task one after another, in registration order."""
        logger.info("Executing all enabled tasks...")
        results: list[TaskExecutionResult] = []
        for task_id, task in self._tasks.items():
            if not task.enabled:
                continue
            try:
                results.append(await self.execute_task(task_id))
            except Exception as e:
                logger.error("Failed to execute task %s: %s", task_id, e)
                results.append(
                    TaskExecutionResult(
                        task_id=task_id,
                        success=False,
                        errors=[str(e) or type(e).__name__],
                    )
                )
        return results

    async def _prior_warnings(
        self, adapter: SourceAdapter, records: Sequence[PriceRecord]
    ) -> list[str]:
        if self._history_source is None or not records:
            return []
        end = max(date.fromisoformat(r.date) for r in records)
        try:
            prior = await self._history_source.fetch_recent(str(adapter.market_code), end=end)
        except CarbonCollectorError as e:
            logger.warning("Skipping comparison with stored prices: %s", e)
            return []
        return compare_with_prior(records, prior)

    def _on_failure(self, task: ScheduledTask, message: str) -> None:
        task.retry_count += 1
        logger.error(
            "Task %s failed (attempt %d/%d): %s",
            task.id, task.retry_count, task.max_retries, message,
        )
        if task.retries_exhausted:
            logger.error("Task %s failed after %d attempts", task.id, task.max_retries)
            return

        delay = task.retry_count * self._config.retry_delay_seconds
        logger.info("Retrying task %s in %.0f seconds", task.id, delay)
        retry = asyncio.create_task(self._retry_later(task.id, delay))
        self._pending_retries.add(retry)
        retry.add_done_callback(self._pending_retries.discard)

    async def _retry_later(self, task_id: TaskId, delay: float) -> None:
        await asyncio.sleep(delay)
        if not self._tasks[task_id].enabled:
            logger.info("Task %s disabled, dropping pending retry", task_id)
            return
        await self.execute_task(task_id)

    async def _alert_exhausted(self, task: ScheduledTask, message: str) -> None:
        await self._alerter.notify(
            AlertLevel.ERROR,
            f"Task {task.id} failed permanently",
            message,
            {"task_id": task.id, "market": str(task.adapter.market_code),
             "attempts": task.retry_count},
        )

    async def _record(self, result: TaskExecutionResult) -> None:
        self._history.append(result)
        capacity = self._config.history_capacity
        if len(self._history) > capacity:
            self._history = self._history[-(capacity // 2):]

        if self._store is not None:
            try:
                await self._store.save_execution(result)
            except StorageError as e:
                logger.error("Execution result for %s not persisted: %s", result.task_id, e)

    # --- Health ---

    async def get_health_status(self) -> SchedulerHealth:
        """Probe every task's adapter and grade the scheduler as a whole."""
        tasks: dict[TaskId, HealthStatus] = {}
        for task_id, task in self._tasks.items():
            try:
                tasks[task_id] = await task.adapter.get_health_status()
            except Exception as e:
                tasks[task_id] = HealthStatus(
                    status=HealthState.UNHEALTHY,
                    message=f"Health check failed: {str(e) or type(e).__name__}",
                )

        healthy = sum(1 for h in tasks.values() if h.status == HealthState.HEALTHY)
        total = len(self._tasks)
        if healthy == total:
            overall = HealthState.HEALTHY
        elif healthy >= total * 0.5:
            overall = HealthState.DEGRADED
        else:
            overall = HealthState.UNHEALTHY
        return SchedulerHealth(scheduler=overall, tasks=tasks)

    # --- Task Management ---

    def get_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    def get_task(self, task_id: TaskId) -> ScheduledTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(
                f"Task not found: {task_id}",
                context={"task_id": task_id, "known": sorted(self._tasks)},
            )
        return task

    def enable_task(self, task_id: TaskId) -> ScheduledTask:
        task = self.get_task(task_id)
        if not task.enabled:
            task.enabled = True
            if self._running:
                self._schedule(task)
        return task

    def disable_task(self, task_id: TaskId) -> ScheduledTask:
        task = self.get_task(task_id)
        if task.enabled:
            task.enabled = False
            task.next_run = None
            if self._running:
                self._unschedule(task_id)
        return task

    def get_execution_history(self, task_id: TaskId | None = None) -> list[TaskExecutionResult]:
        if task_id is not None:
            return [r for r in self._history if r.task_id == task_id]
        return list(self._history)
