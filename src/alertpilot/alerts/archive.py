"""Redis-backed alert history.

Mirrors every alert state change into Redis so alert history survives a
restart.  Each alert is stored as JSON under its own key; the TTL is the
retention period, after which Redis expires the record.

Key schema:
    alertpilot:alert:{alert_id}

Usage::

    from alertpilot.alerts.archive import RedisAlertArchive

    archive = RedisAlertArchive(url="redis://localhost:6379/0", ttl=86400)
    manager = AlertManager(archive=archive)
    manager.restore()
"""
from __future__ import annotations

import json
import logging
from typing import Any

from ..models import Alert

logger = logging.getLogger(__name__)

KEY_PREFIX = "alertpilot:alert:"


def alert_key(alert_id: str) -> str:
    return f"{KEY_PREFIX}{alert_id}"


class RedisAlertArchive:
    """Persist alerts in Redis.

    Gracefully degrades to a no-op when Redis is unavailable — the in-memory
    AlertManager stays authoritative and the caller never handles archive
    errors.

    Args:
        url:  Redis connection URL (redis://host:port/db).
        ttl:  Retention in seconds for archived alerts.
    """

    def __init__(self, url: str = "redis://localhost:6379/0", ttl: int = 30 * 24 * 3600) -> None:
        self._url = url
        self._ttl = ttl
        self._client: Any = None
        self._connect()

    def _connect(self) -> None:
        try:
            import redis

            self._client = redis.Redis.from_url(self._url, decode_responses=True)
            self._client.ping()
            logger.debug("Alert archive connected: %s", self._url)
        except Exception as exc:
            logger.warning("Redis unavailable — alert archive disabled: %s", exc)
            self._client = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def save(self, alert: Alert) -> bool:
        """Serialize and store *alert* with the retention TTL.

        Returns True on success, False on error.
        """
        if self._client is None:
            return False
        try:
            self._client.setex(alert_key(alert.id), self._ttl, json.dumps(alert.to_dict()))
            return True
        except Exception as exc:
            logger.warning("Archiving alert %s failed: %s", alert.id, exc)
            return False

    def load(self, alert_id: str) -> Alert | None:
        """Return the archived alert, or None on miss / error."""
        if self._client is None:
            return None
        try:
            raw = self._client.get(alert_key(alert_id))
            if raw is None:
                return None
            return Alert.from_dict(json.loads(raw))
        except Exception as exc:
            logger.warning("Loading archived alert %s failed: %s", alert_id, exc)
            return None

    def load_all(self) -> list[Alert]:
        """Return every archived alert; unreadable records are skipped."""
        if self._client is None:
            return []
        alerts: list[Alert] = []
        try:
            for key in self._client.scan_iter(match=f"{KEY_PREFIX}*"):
                raw = self._client.get(key)
                if raw is None:
                    continue
                try:
                    alerts.append(Alert.from_dict(json.loads(raw)))
                except (ValueError, KeyError, TypeError) as exc:
                    logger.warning("Skipping unreadable archived alert %s: %s", key, exc)
        except Exception as exc:
            logger.warning("Listing archived alerts failed: %s", exc)
        return alerts

    def delete(self, alert_id: str) -> bool:
        """Delete an archived alert. Returns True if the key existed."""
        if self._client is None:
            return False
        try:
            return bool(self._client.delete(alert_key(alert_id)))
        except Exception as exc:
            logger.warning("Deleting archived alert %s failed: %s", alert_id, exc)
            return False

    @property
    def available(self) -> bool:
        """True when the Redis connection is healthy."""
        return self._client is not None
