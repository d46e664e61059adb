"""Alert lifecycle — acknowledge / resolve transitions and alert queries.

Acknowledged and resolved are independent flags; each is set at most once
and re-applying either is a no-op that keeps the original actor and
timestamp.  Alerts are never deleted here — retention belongs to the
archive's TTL.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from ..errors import AlertNotFoundError
from ..models import Alert, AlertRule, NotificationRecord
from .archive import RedisAlertArchive

logger = logging.getLogger(__name__)


class AlertManager:
    """Own the set of alerts and every state change applied to them.

    All methods are thread-safe.  Returned alerts are live objects; treat
    them as read-only and go through ``acknowledge`` / ``resolve``.
    """

    def __init__(
        self,
        archive: RedisAlertArchive | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._alerts: dict[str, Alert] = {}
        self._lock = threading.Lock()
        self._archive = archive
        self._clock = clock

    def _persist(self, alert: Alert) -> None:
        if self._archive is not None:
            self._archive.save(alert)

    def restore(self) -> int:
        """Load archived alerts into memory. Returns the number loaded."""
        if self._archive is None:
            return 0
        loaded = self._archive.load_all()
        with self._lock:
            for alert in loaded:
                self._alerts.setdefault(alert.id, alert)
        logger.info("Restored %d alerts from archive", len(loaded))
        return len(loaded)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, alert: Alert) -> Alert:
        with self._lock:
            if alert.id in self._alerts:
                raise ValueError(f"duplicate alert id {alert.id!r}")
            self._alerts[alert.id] = alert
            self._persist(alert)
        return alert

    def acknowledge(self, alert_id: str, actor: str) -> Alert:
        with self._lock:
            alert = self._get(alert_id)
            if not alert.acknowledged:
                alert.acknowledged = True
                alert.acknowledged_by = actor
                alert.acknowledged_at = self._clock()
                self._persist(alert)
                logger.info("Alert %s acknowledged by %s", alert_id, actor)
            return alert

    def resolve(self, alert_id: str) -> Alert:
        with self._lock:
            alert = self._get(alert_id)
            if not alert.resolved:
                alert.resolved = True
                alert.resolved_at = self._clock()
                self._persist(alert)
                logger.info("Alert %s resolved", alert_id)
            return alert

    def record_notification(self, alert_id: str, record: NotificationRecord) -> None:
        """Append a delivery outcome to the alert's notification history."""
        with self._lock:
            alert = self._get(alert_id)
            alert.notifications_sent.append(record)
            self._persist(alert)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _get(self, alert_id: str) -> Alert:
        alert = self._alerts.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(f"no alert with id {alert_id!r}")
        return alert

    def get(self, alert_id: str) -> Alert:
        with self._lock:
            return self._get(alert_id)

    def all(self) -> list[Alert]:
        """Every alert, newest first."""
        with self._lock:
            return sorted(self._alerts.values(), key=lambda a: a.triggered_at, reverse=True)

    def active(self) -> list[Alert]:
        """Alerts that have not been resolved, newest first."""
        return [a for a in self.all() if not a.resolved]

    def unacknowledged(self) -> list[Alert]:
        """Alerts neither acknowledged nor resolved — the badge count."""
        return [a for a in self.all() if not a.acknowledged and not a.resolved]

    def for_rule(self, rule_id: str) -> list[Alert]:
        return [a for a in self.all() if a.rule_id == rule_id]

    def alerts_per_hour(self, now: datetime | None = None) -> int:
        """Number of alerts triggered during the hour up to *now*."""
        now = now or self._clock()
        since = now - timedelta(hours=1)
        return sum(1 for a in self.all() if since <= a.triggered_at <= now)

    def summary(self, rules: Iterable[AlertRule], now: datetime | None = None) -> dict[str, Any]:
        """Counts consumed by dashboards."""
        return {
            "active_rules": sum(1 for r in rules if r.enabled),
            "unacknowledged_alerts": len(self.unacknowledged()),
            "alerts_per_hour": self.alerts_per_hour(now),
        }

    def __len__(self) -> int:
        return len(self._alerts)
