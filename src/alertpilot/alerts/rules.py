"""Alert rules engine — evaluate monitoring rules against a log source.

Every tick walks the stored rules and puts each one through the same state
machine::

    disabled ─┐
    outside_window ─┼─> skipped, no state change
    in_cooldown ─┘
    eligible ──> search ─> aggregate ─> compare ─> (match) raise alert

A failure while evaluating one rule is logged and never stops the others.
On a match the alert is stored, the rule's ``last_triggered_at`` and
``trigger_count`` are written back (nothing else), and the alert is handed
to the notification dispatcher.
"""
from __future__ import annotations

import copy
import dataclasses
import functools
import logging
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable

from ..aggregators.metric import aggregate
from ..config import Settings
from ..errors import MalformedRuleError, NotFoundError
from ..models import Alert, AlertRule, LogEntry, new_id, validate_rule
from ..notifications.dispatcher import NotificationDispatcher
from ..scheduling.window import in_active_window
from ..sources.base import LogSource
from ..storage import Store
from .conditions import evaluate
from .lifecycle import AlertManager

logger = logging.getLogger(__name__)

# Fields owned by the engine; user edits never touch them.
_PROTECTED_FIELDS = ("id", "created_at", "last_triggered_at", "trigger_count")


class RuleState(Enum):
    DISABLED = "disabled"
    OUTSIDE_WINDOW = "outside_window"
    IN_COOLDOWN = "in_cooldown"
    ELIGIBLE = "eligible"


def in_cooldown(rule: AlertRule, now: datetime) -> bool:
    if rule.last_triggered_at is None:
        return False
    cooldown = timedelta(minutes=rule.notifications.cooldown_minutes)
    return now - rule.last_triggered_at < cooldown


def rule_state(rule: AlertRule, now: datetime) -> RuleState:
    """Classify *rule* at *now*; checks run in the order they gate evaluation."""
    if not rule.enabled:
        return RuleState.DISABLED
    if not in_active_window(rule.active_window, now):
        return RuleState.OUTSIDE_WINDOW
    if in_cooldown(rule, now):
        return RuleState.IN_COOLDOWN
    return RuleState.ELIGIBLE


def render_message(rule: AlertRule, value: float) -> str:
    cond = rule.conditions
    return f"Alert: {rule.name} - {cond.aggregation}({value:g}) {cond.operator} {cond.threshold:g}"


@dataclass(frozen=True)
class RuleTestResult:
    """Outcome of a dry run: what the rule would see and decide right now."""

    rule_id: str
    state: RuleState
    entries: list[LogEntry]
    value: float
    would_trigger: bool


def _log_dispatch_failure(alert_id: str, future: Future[Any]) -> None:
    exc = future.exception()
    if exc is not None:
        logger.warning("Dispatch for alert %s failed: %s", alert_id, exc)


class RulesEngine:
    """Evaluate stored AlertRules against a log source on every tick.

    Usage::

        engine = RulesEngine(
            store=MemoryStore(),
            source=FileLogSource("app.ndjson"),
            alerts=AlertManager(),
            dispatcher=NotificationDispatcher.from_settings(settings),
        )
        engine.add_rule(rule)
        new_alerts = engine.tick()

    A rule whose previous evaluation is still running is skipped, so the
    same rule is never evaluated twice concurrently.  When an *executor* is
    given, notifications are sent on it and ``tick`` does not wait for the
    transports.
    """

    def __init__(
        self,
        store: Store[AlertRule],
        source: LogSource,
        alerts: AlertManager,
        dispatcher: NotificationDispatcher,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = datetime.now,
        executor: Executor | None = None,
    ) -> None:
        self._store = store
        self._source = source
        self._alerts = alerts
        self._dispatcher = dispatcher
        self._settings = settings or Settings()
        self._clock = clock
        self._executor = executor
        self._in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Rule management
    # ------------------------------------------------------------------

    def add_rule(self, rule: AlertRule) -> AlertRule:
        validate_rule(rule)
        now = self._clock()
        rule = dataclasses.replace(rule, created_at=rule.created_at or now, updated_at=now)
        return self._store.create(rule)

    def update_rule(self, rule_id: str, **changes: Any) -> AlertRule:
        current = self._store.get(rule_id)
        if current is None:
            raise NotFoundError(f"no rule with id {rule_id!r}")
        protected = sorted(set(changes) & set(_PROTECTED_FIELDS))
        if protected:
            raise ValueError(f"rule fields cannot be updated: {', '.join(protected)}")
        changes["updated_at"] = self._clock()
        validate_rule(dataclasses.replace(current, **changes))
        return self._store.update(rule_id, changes)

    def remove_rule(self, rule_id: str) -> bool:
        return self._store.delete(rule_id)

    @property
    def rules(self) -> list[AlertRule]:
        return self._store.list()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def tick(self, now: datetime | None = None) -> list[Alert]:
        """Evaluate every stored rule once. Returns the alerts raised."""
        now = now or self._clock()
        rules = self._store.list()
        raised: list[Alert] = []
        for rule in rules:
            try:
                alert = self.evaluate_rule(rule, now)
            except Exception as exc:
                logger.warning("Evaluation of rule %s (%s) failed: %s", rule.id, rule.name, exc)
                continue
            if alert is not None:
                raised.append(alert)
        logger.debug("Tick at %s: %d rules evaluated, %d alerts raised", now, len(rules), len(raised))
        return raised

    def evaluate_rule(self, rule: AlertRule, now: datetime | None = None) -> Alert | None:
        """Run one evaluation cycle for *rule*; errors propagate to the caller.

        The rule is re-read from the store once the in-flight claim is held,
        so the cycle sees the bookkeeping written by any earlier cycle.
        """
        now = now or self._clock()
        if not self._claim(rule.id):
            logger.debug("Rule %s is still being evaluated, skipped", rule.id)
            return None
        try:
            current = self._store.get(rule.id)
            if current is None:
                logger.debug("Rule %s no longer exists, skipped", rule.id)
                return None
            return self._evaluate(copy.deepcopy(current), now)
        finally:
            self._release(rule.id)

    def test_rule(self, rule: AlertRule, now: datetime | None = None) -> RuleTestResult:
        """Dry-run *rule*: no alert is raised and no bookkeeping is written."""
        now = now or self._clock()
        entries, value = self._measure(rule, now, self._settings.rule_test_max_entries)
        return RuleTestResult(
            rule_id=rule.id,
            state=rule_state(rule, now),
            entries=entries,
            value=value,
            would_trigger=evaluate(value, rule.conditions.threshold, rule.conditions.operator),
        )

    def _claim(self, rule_id: str) -> bool:
        with self._in_flight_lock:
            if rule_id in self._in_flight:
                return False
            self._in_flight.add(rule_id)
            return True

    def _release(self, rule_id: str) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(rule_id)

    def _evaluate(self, rule: AlertRule, now: datetime) -> Alert | None:
        state = rule_state(rule, now)
        if state is not RuleState.ELIGIBLE:
            logger.debug("Rule %s skipped: %s", rule.id, state.value)
            return None

        entries, value = self._measure(rule, now, self._settings.search_max_entries)
        if not evaluate(value, rule.conditions.threshold, rule.conditions.operator):
            return None
        return self._trigger(rule, entries, value, now)

    def _measure(
        self, rule: AlertRule, now: datetime, max_entries: int
    ) -> tuple[list[LogEntry], float]:
        window = rule.conditions.time_window_minutes
        start = now - timedelta(minutes=window)
        entries = list(self._source.search(rule.query, start, now, max_entries))
        try:
            value = aggregate(entries, rule.conditions.aggregation, window)
        except MalformedRuleError as exc:
            raise MalformedRuleError(rule.id, exc.problems) from exc
        return entries, value

    def _trigger(
        self, rule: AlertRule, entries: list[LogEntry], value: float, now: datetime
    ) -> Alert:
        alert = Alert(
            id=new_id("alert"),
            rule_id=rule.id,
            rule_name=rule.name,
            severity=rule.severity,
            message=render_message(rule, value),
            query=rule.query,
            value=value,
            threshold=float(rule.conditions.threshold),
            triggered_at=now,
            matching_logs=entries[: self._settings.max_matching_logs],
        )
        self._alerts.add(alert)
        try:
            self._store.update(
                rule.id,
                {"last_triggered_at": now, "trigger_count": rule.trigger_count + 1},
            )
        except NotFoundError:
            logger.warning("Rule %s was deleted while being evaluated", rule.id)
        logger.info("Rule %s triggered alert %s: %s", rule.id, alert.id, alert.message)

        self._dispatch(alert, rule)
        return alert

    def _dispatch(self, alert: Alert, rule: AlertRule) -> None:
        if not rule.notifications.channels:
            return
        on_record = functools.partial(self._alerts.record_notification, alert.id)
        if self._executor is None:
            self._dispatcher.dispatch(alert, rule.notifications, on_record)
            return
        future = self._executor.submit(
            self._dispatcher.dispatch, alert, rule.notifications, on_record
        )
        future.add_done_callback(functools.partial(_log_dispatch_failure, alert.id))
