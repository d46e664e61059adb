"""Shared pytest fixtures for alertpilot tests."""
from __future__ import annotations

import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from alertpilot.alerts.lifecycle import AlertManager
from alertpilot.alerts.rules import RulesEngine
from alertpilot.config import Settings
from alertpilot.errors import DeliveryError
from alertpilot.models import AlertRule, Conditions, LogEntry, NotificationSettings
from alertpilot.notifications.base import NotificationChannel
from alertpilot.notifications.dispatcher import NotificationDispatcher
from alertpilot.storage import MemoryStore

# Monday 2024-01-01 12:00
NOW = datetime(2024, 1, 1, 12, 0)


class FakeLogSource:
    """In-memory LogSource that records every search it answers."""

    def __init__(self, entries: list[LogEntry] | None = None, error: Exception | None = None) -> None:
        self.entries = list(entries or [])
        self.error = error
        self.calls: list[tuple[str, datetime, datetime, int]] = []

    def search(self, query: str, start: datetime, end: datetime, max_entries: int) -> list[LogEntry]:
        self.calls.append((query, start, end, max_entries))
        if self.error is not None:
            raise self.error
        found = [e for e in self.entries if start <= e.timestamp <= end]
        return found[:max_entries]


class RecordingChannel(NotificationChannel):
    """Channel that remembers deliveries and optionally fails them."""

    def __init__(self, name: str, fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.delivered: list[tuple[Any, dict[str, Any]]] = []

    def deliver(self, target: Any, payload: dict[str, Any]) -> None:
        if self.fail:
            raise DeliveryError(f"{self.name} transport down")
        self.delivered.append((target, payload))


def make_entries(count: int, end: datetime = NOW, level: str = "ERROR", **metadata: Any) -> list[LogEntry]:
    """*count* entries spaced one minute apart, the last one at *end*."""
    return [
        LogEntry(
            level=level,
            message=f"failure {i}",
            timestamp=end - timedelta(minutes=i),
            source="api",
            metadata=dict(metadata),
        )
        for i in range(count)
    ]


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def make_rule():
    """Return a factory building valid AlertRules with overridable fields."""

    def _make(
        rule_id: str = "r1",
        threshold: float = 10,
        operator: str = ">",
        aggregation: str = "count",
        window: int = 5,
        channels: list[str] | None = None,
        cooldown: int = 15,
        **kwargs: Any,
    ) -> AlertRule:
        return AlertRule(
            id=rule_id,
            name=kwargs.pop("name", f"rule {rule_id}"),
            query=kwargs.pop("query", "ERROR"),
            conditions=Conditions(
                threshold=threshold,
                time_window_minutes=window,
                operator=operator,
                aggregation=aggregation,
            ),
            notifications=NotificationSettings(
                channels=list(channels or []),
                recipients=kwargs.pop("recipients", ["ops@example.com"]),
                webhook_url=kwargs.pop("webhook_url", "https://hooks.example.com/alert"),
                chat_target=kwargs.pop("chat_target", None),
                cooldown_minutes=cooldown,
            ),
            **kwargs,
        )

    return _make


@pytest.fixture()
def channels() -> dict[str, RecordingChannel]:
    return {
        "email": RecordingChannel("email"),
        "webhook": RecordingChannel("webhook"),
    }


@pytest.fixture()
def dispatcher(channels: dict[str, RecordingChannel]) -> NotificationDispatcher:
    d = NotificationDispatcher(clock=lambda: NOW)
    for channel in channels.values():
        d.register_channel(channel)
    return d


@pytest.fixture()
def make_engine(dispatcher: NotificationDispatcher):
    """Return a factory wiring a RulesEngine over a FakeLogSource."""

    def _make(source: FakeLogSource | None = None, **kwargs: Any) -> RulesEngine:
        return RulesEngine(
            store=kwargs.pop("store", MemoryStore()),
            source=source or FakeLogSource(),
            alerts=kwargs.pop("alerts", AlertManager(clock=lambda: NOW)),
            dispatcher=kwargs.pop("dispatcher", dispatcher),
            settings=kwargs.pop("settings", Settings(_env_file=None)),
            clock=lambda: NOW,
            **kwargs,
        )

    return _make


@pytest.fixture()
def ndjson_file(tmp_path: Path):
    """Return a factory that writes records as an NDJSON log file."""

    def _make(records: list[dict[str, Any]], name: str = "app.ndjson") -> Path:
        p = tmp_path / name
        p.write_text("\n".join(json.dumps(r) for r in records) + "\n", encoding="utf-8")
        return p

    return _make
