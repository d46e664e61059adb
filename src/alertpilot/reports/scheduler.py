"""Scheduled report execution.

Each enabled schedule owns one ``threading.Timer`` set to fire at its
``next_run``.  When it fires the report is executed
(query -> render -> deliver) and, whatever the outcome, ``last_run`` and
``next_run`` are recomputed from the current time and the timer re-armed.
A failed run is recorded and the schedule simply moves on to its next
occurrence.

Timers are only armed between ``start()`` and ``shutdown()``; schedules can
be managed (and run by hand with ``run_schedule``) without starting them.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
from datetime import datetime
from typing import Callable

from ..errors import ReportExecutionError, ScheduleNotFoundError
from ..models import (
    COMPLETED,
    FAILED,
    REPORT_FORMATS,
    RUNNING,
    ExecutionResult,
    ReportScheduleConfig,
    ScheduledReportExecution,
    new_id,
)
from ..scheduling.cron import describe, next_run
from ..storage import MemoryStore, Store
from .definition import ReportDataSource, ReportDefinitionStore, build_query
from .delivery import ReportDelivery
from .render import ReportRenderer

logger = logging.getLogger(__name__)

TimerFactory = Callable[..., threading.Timer]


def _check_config(config: ReportScheduleConfig) -> None:
    if not config.cron or not config.cron.strip():
        raise ValueError("cron expression must not be empty")
    if config.format not in REPORT_FORMATS:
        raise ValueError(f"format must be one of {', '.join(REPORT_FORMATS)}")


class ReportScheduler:
    """Own report schedules, their timers and the execution history.

    Usage::

        scheduler = ReportScheduler(
            definitions=definition_store,
            data_source=warehouse,
            renderer=ReportRenderer.from_settings(settings),
            delivery=EmailReportDelivery(EmailChannel.from_settings(settings)),
        )
        scheduler.start()
        scheduler.create_schedule(ReportScheduleConfig(
            id="weekly-errors", report_id="errors", name="Weekly errors",
            cron="0 9 * * 1", recipients=["ops@example.com"],
        ))
        ...
        scheduler.shutdown()
    """

    def __init__(
        self,
        definitions: ReportDefinitionStore,
        data_source: ReportDataSource,
        renderer: ReportRenderer,
        delivery: ReportDelivery,
        store: Store[ReportScheduleConfig] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._definitions = definitions
        self._data_source = data_source
        self._renderer = renderer
        self._delivery = delivery
        self._store: Store[ReportScheduleConfig] = store if store is not None else MemoryStore()
        self._clock = clock
        self._timer_factory = timer_factory
        self._executions: dict[str, ScheduledReportExecution] = {}
        self._timers: dict[str, threading.Timer] = {}
        self._run_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()
        self._running = False

    # ------------------------------------------------------------------
    # Schedule management
    # ------------------------------------------------------------------

    def create_schedule(self, config: ReportScheduleConfig) -> ReportScheduleConfig:
        _check_config(config)
        now = self._clock()
        config = dataclasses.replace(
            config,
            created_at=config.created_at or now,
            updated_at=now,
            next_run=next_run(config.cron, now),
        )
        created = self._store.create(config)
        logger.info("Schedule %s created, next run %s", created.id, created.next_run)
        if created.enabled:
            self._arm(created)
        return created

    def update_schedule(self, schedule_id: str, **changes: object) -> ReportScheduleConfig:
        """Apply *changes*, recompute ``next_run`` and re-arm the timer."""
        current = self._store.get(schedule_id)
        if current is None:
            raise ScheduleNotFoundError(f"no schedule with id {schedule_id!r}")
        changes.pop("id", None)
        merged = dataclasses.replace(current, **changes)
        _check_config(merged)
        now = self._clock()
        changes["next_run"] = next_run(merged.cron, now)
        changes["updated_at"] = now
        updated = self._store.update(schedule_id, changes)

        self._cancel(schedule_id)
        if updated.enabled:
            self._arm(updated)
        return updated

    def delete_schedule(self, schedule_id: str) -> bool:
        self._cancel(schedule_id)
        with self._lock:
            self._run_locks.pop(schedule_id, None)
        return self._store.delete(schedule_id)

    def get_schedule(self, schedule_id: str) -> ReportScheduleConfig | None:
        return self._store.get(schedule_id)

    def list_schedules(self) -> list[ReportScheduleConfig]:
        return self._store.list()

    def cron_description(self, schedule_id: str) -> str:
        config = self._store.get(schedule_id)
        if config is None:
            raise ScheduleNotFoundError(f"no schedule with id {schedule_id!r}")
        return describe(config.cron)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Arm a timer for every enabled schedule."""
        self._running = True
        armed = 0
        for config in self._store.list():
            if not config.enabled:
                continue
            if config.next_run is None:
                config = self._store.update(config.id, {"next_run": next_run(config.cron, self._clock())})
            self._arm(config)
            armed += 1
        logger.info("Report scheduler started with %d active schedules", armed)

    def shutdown(self) -> None:
        """Cancel every timer. In-flight executions finish but do not re-arm."""
        self._running = False
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        logger.info("Report scheduler stopped")

    def armed(self) -> list[str]:
        """Ids of schedules with a pending timer."""
        with self._lock:
            return sorted(self._timers)

    def _arm(self, config: ReportScheduleConfig) -> None:
        if not self._running or config.next_run is None:
            return
        delay = max(0.0, (config.next_run - self._clock()).total_seconds())
        timer = self._timer_factory(delay, self.run_schedule, args=(config.id,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(config.id, None)
            self._timers[config.id] = timer
        if previous is not None:
            previous.cancel()
        timer.start()
        logger.debug("Schedule %s armed to fire in %.0fs", config.id, delay)

    def _cancel(self, schedule_id: str) -> None:
        with self._lock:
            timer = self._timers.pop(schedule_id, None)
        if timer is not None:
            timer.cancel()

    def _run_lock(self, schedule_id: str) -> threading.Lock:
        with self._lock:
            return self._run_locks.setdefault(schedule_id, threading.Lock())

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run_schedule(self, schedule_id: str) -> ScheduledReportExecution | None:
        """Execute a schedule now, then advance it to its next occurrence.

        Returns None without executing when the schedule is gone, disabled,
        or already running.
        """
        config = self._store.get(schedule_id)
        if config is None or not config.enabled:
            logger.debug("Schedule %s is missing or disabled — not executed", schedule_id)
            return None

        run_lock = self._run_lock(schedule_id)
        if not run_lock.acquire(blocking=False):
            logger.warning("Schedule %s is still running — skipped", schedule_id)
            return None
        try:
            return self.execute_report(
                config.report_id,
                config.format,
                config.recipients,
                scheduled_at=config.next_run,
            )
        finally:
            try:
                self._reschedule(schedule_id)
            finally:
                run_lock.release()

    def _reschedule(self, schedule_id: str) -> None:
        now = self._clock()
        current = self._store.get(schedule_id)
        if current is None:
            return
        updated = self._store.update(
            schedule_id,
            {"last_run": now, "next_run": next_run(current.cron, now), "updated_at": now},
        )
        if updated.enabled and self._running:
            self._arm(updated)
        else:
            self._cancel(schedule_id)
        logger.debug("Schedule %s next run %s", schedule_id, updated.next_run)

    def execute_report(
        self,
        report_id: str,
        fmt: str,
        recipients: list[str],
        scheduled_at: datetime | None = None,
    ) -> ScheduledReportExecution:
        """Run a report once. Failures are captured on the execution, never raised."""
        execution = ScheduledReportExecution(
            id=new_id("execution"),
            report_id=report_id,
            scheduled_at=scheduled_at or self._clock(),
            recipients=list(recipients),
            format=fmt,
        )
        with self._lock:
            self._executions[execution.id] = execution

        execution.transition(RUNNING, at=self._clock())
        try:
            definition = self._definitions.get(report_id)
            if definition is None:
                raise ReportExecutionError(f"report {report_id!r} not found")
            rows = list(self._data_source.execute(build_query(definition)))
            path = self._renderer.render(definition, rows, fmt, now=self._clock())
            self._delivery.deliver(definition, path, list(recipients), fmt)
        except Exception as exc:
            execution.transition(
                FAILED, result=ExecutionResult(error=str(exc) or exc.__class__.__name__)
            )
            logger.warning("Report %s execution %s failed: %s", report_id, execution.id, exc)
        else:
            execution.transition(
                COMPLETED, result=ExecutionResult(file_path=path, record_count=len(rows))
            )
            logger.info(
                "Report %s execution %s completed (%d records)", report_id, execution.id, len(rows)
            )
        return execution

    def executions(self, report_id: str | None = None) -> list[ScheduledReportExecution]:
        with self._lock:
            found = list(self._executions.values())
        if report_id is not None:
            found = [e for e in found if e.report_id == report_id]
        return sorted(found, key=lambda e: e.scheduled_at)

    def get_execution(self, execution_id: str) -> ScheduledReportExecution | None:
        with self._lock:
            return self._executions.get(execution_id)
