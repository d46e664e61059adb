"""Core data model — alert rules, log entries, alerts and report executions.

Rules and schedules are plain mutable dataclasses owned by a store; the
evaluation loop only ever writes back the bookkeeping fields of a rule
(``last_triggered_at`` and ``trigger_count``).  Alerts are append-only with
respect to ``notifications_sent``.

JSON documents use snake_case keys.  ``rule_from_dict`` also accepts the
operator aliases ``gt/gte/lt/lte/eq/ne`` and ``slack`` as a chat channel.
"""
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from .errors import InvalidTransitionError, MalformedRuleError

OPERATORS: tuple[str, ...] = (">", ">=", "<", "<=", "==", "!=")
OPERATOR_ALIASES: dict[str, str] = {
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "eq": "==",
    "ne": "!=",
}
AGGREGATIONS: tuple[str, ...] = ("count", "rate", "avg", "sum", "min", "max")
SEVERITIES: tuple[str, ...] = ("low", "medium", "high", "critical")
CHANNELS: tuple[str, ...] = ("email", "webhook", "sms", "chat")
CHANNEL_ALIASES: dict[str, str] = {"slack": "chat"}
REPORT_FORMATS: tuple[str, ...] = ("pdf", "html", "csv")

ALL_DAYS: tuple[int, ...] = (0, 1, 2, 3, 4, 5, 6)  # 0 = Sunday

_HHMM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

# Formats tried in order when a timestamp is not valid ISO-8601
_TIMESTAMP_FORMATS: list[str] = [
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%d %H:%M:%S",
    "%d/%b/%Y:%H:%M:%S %z",
    "%Y-%m-%d",
]


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def parse_hhmm(value: str) -> int:
    """Return minutes since midnight for an ``HH:MM`` string."""
    match = _HHMM.match(value.strip())
    if match is None:
        raise ValueError(f"invalid HH:MM time: {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse a timestamp into a naive datetime, or None when unparseable.

    Timezone-aware values are converted by dropping tzinfo, matching the
    wall-clock comparisons used everywhere else.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.replace(tzinfo=None)
    text = str(raw).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        pass
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=None)
        except ValueError:
            continue
    return None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# Log entries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LogEntry:
    """One immutable record returned by the log source."""

    level: str
    message: str
    timestamp: datetime
    source: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LogEntry":
        ts = parse_timestamp(data.get("timestamp") or data.get("time") or data.get("@timestamp"))
        if ts is None:
            raise ValueError(f"log entry has no usable timestamp: {dict(data)!r}")
        metadata = data.get("metadata")
        return cls(
            level=str(data.get("level", "INFO")),
            message=str(data.get("message") or data.get("msg") or ""),
            timestamp=ts,
            source=str(data.get("source", "")),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "metadata": dict(self.metadata),
        }


# ---------------------------------------------------------------------------
# Alert rules
# ---------------------------------------------------------------------------

@dataclass
class Conditions:
    threshold: float
    time_window_minutes: int
    operator: str = ">"
    aggregation: str = "count"


@dataclass
class NotificationSettings:
    channels: list[str] = field(default_factory=list)
    recipients: list[str] = field(default_factory=list)
    webhook_url: str | None = None
    chat_target: str | None = None
    cooldown_minutes: int = 15

    def target_for(self, channel: str) -> Any:
        """Return the delivery target configured for a channel, or None."""
        if channel in ("email", "sms"):
            return list(self.recipients) or None
        if channel == "webhook":
            return self.webhook_url or None
        if channel == "chat":
            return self.chat_target or None
        return None


@dataclass
class ActiveWindow:
    """Time-of-day / day-of-week range during which a rule may fire."""

    enabled: bool = True
    start_time: str = "00:00"
    end_time: str = "23:59"
    days_of_week: list[int] = field(default_factory=lambda: list(ALL_DAYS))


@dataclass
class AlertRule:
    """A monitoring rule evaluated against the log source on every tick.

    Attributes:
        query:          Opaque search string handed to the log source.
        conditions:     Aggregation, comparison operator, threshold and the
                        look-back window in minutes.
        notifications:  Channels, their targets and the cooldown between
                        two consecutive alerts of this rule.
        active_window:  Optional window outside of which the rule is skipped.
    """

    id: str
    name: str
    query: str
    conditions: Conditions
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    description: str = ""
    enabled: bool = True
    severity: str = "medium"
    active_window: ActiveWindow | None = None
    last_triggered_at: datetime | None = None
    trigger_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        window = self.active_window
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "query": self.query,
            "severity": self.severity,
            "conditions": {
                "threshold": self.conditions.threshold,
                "time_window_minutes": self.conditions.time_window_minutes,
                "operator": self.conditions.operator,
                "aggregation": self.conditions.aggregation,
            },
            "notifications": {
                "channels": list(self.notifications.channels),
                "recipients": list(self.notifications.recipients),
                "webhook_url": self.notifications.webhook_url,
                "chat_target": self.notifications.chat_target,
                "cooldown_minutes": self.notifications.cooldown_minutes,
            },
            "active_window": None if window is None else {
                "enabled": window.enabled,
                "start_time": window.start_time,
                "end_time": window.end_time,
                "days_of_week": list(window.days_of_week),
            },
            "last_triggered_at": _iso(self.last_triggered_at),
            "trigger_count": self.trigger_count,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


def validate_rule(rule: AlertRule) -> None:
    """Raise MalformedRuleError listing every problem found in *rule*.

    Runs when a rule is created or edited. The evaluation loop does not
    re-validate; a malformed rule that slips through fails on its own.
    """
    problems: list[str] = []
    if not rule.name or not rule.name.strip():
        problems.append("name must not be empty")
    if not rule.query or not rule.query.strip():
        problems.append("query must not be empty")
    if rule.severity not in SEVERITIES:
        problems.append(f"severity must be one of {', '.join(SEVERITIES)}")

    cond = rule.conditions
    if cond.operator not in OPERATORS:
        problems.append(f"unknown operator {cond.operator!r}")
    if cond.aggregation not in AGGREGATIONS:
        problems.append(f"unknown aggregation {cond.aggregation!r}")
    if not isinstance(cond.time_window_minutes, int) or cond.time_window_minutes <= 0:
        problems.append("time_window_minutes must be a positive integer")
    if isinstance(cond.threshold, bool) or not isinstance(cond.threshold, (int, float)):
        problems.append("threshold must be a number")

    notif = rule.notifications
    if not isinstance(notif.cooldown_minutes, int) or notif.cooldown_minutes < 0:
        problems.append("cooldown_minutes must be an integer >= 0")
    for channel in notif.channels:
        if channel not in CHANNELS:
            problems.append(f"unknown channel {channel!r}")
        elif notif.target_for(channel) is None:
            problems.append(f"channel {channel!r} has no delivery target")

    window = rule.active_window
    if window is not None:
        for label, value in (("start_time", window.start_time), ("end_time", window.end_time)):
            try:
                parse_hhmm(value)
            except ValueError:
                problems.append(f"{label} must be HH:MM, got {value!r}")
        bad_days = [d for d in window.days_of_week if d not in ALL_DAYS]
        if bad_days:
            problems.append(f"days_of_week must be within 0-6, got {bad_days}")

    if problems:
        raise MalformedRuleError(rule.id, problems)


def rule_from_dict(data: Mapping[str, Any]) -> AlertRule:
    """Build an AlertRule from a JSON document (no validation)."""
    rule_id = str(data.get("id") or new_id("rule"))
    try:
        raw_cond = data["conditions"]
        operator = str(raw_cond.get("operator", ">"))
        conditions = Conditions(
            threshold=raw_cond["threshold"],
            time_window_minutes=raw_cond["time_window_minutes"],
            operator=OPERATOR_ALIASES.get(operator, operator),
            aggregation=str(raw_cond.get("aggregation", "count")),
        )
        raw_notif = data.get("notifications") or {}
        notifications = NotificationSettings(
            channels=[CHANNEL_ALIASES.get(c, c) for c in raw_notif.get("channels", [])],
            recipients=list(raw_notif.get("recipients", [])),
            webhook_url=raw_notif.get("webhook_url"),
            chat_target=raw_notif.get("chat_target") or raw_notif.get("slack_channel"),
            cooldown_minutes=raw_notif.get("cooldown_minutes", 15),
        )
        raw_window = data.get("active_window")
        window = None
        if raw_window:
            window = ActiveWindow(
                enabled=bool(raw_window.get("enabled", True)),
                start_time=str(raw_window.get("start_time", "00:00")),
                end_time=str(raw_window.get("end_time", "23:59")),
                days_of_week=list(raw_window.get("days_of_week", ALL_DAYS)),
            )
        return AlertRule(
            id=rule_id,
            name=str(data["name"]),
            query=str(data["query"]),
            conditions=conditions,
            notifications=notifications,
            description=str(data.get("description", "")),
            enabled=bool(data.get("enabled", True)),
            severity=str(data.get("severity", "medium")),
            active_window=window,
            last_triggered_at=parse_timestamp(data.get("last_triggered_at")),
            trigger_count=int(data.get("trigger_count", 0)),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise MalformedRuleError(rule_id, [f"missing or invalid field: {exc}"]) from exc


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NotificationRecord:
    """Outcome of one delivery attempt on one channel."""

    channel: str
    sent_at: datetime
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "sent_at": self.sent_at.isoformat(),
            "success": self.success,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NotificationRecord":
        return cls(
            channel=str(data["channel"]),
            sent_at=parse_timestamp(data["sent_at"]) or datetime.min,
            success=bool(data["success"]),
            error=data.get("error"),
        )


@dataclass
class Alert:
    """One positive evaluation of a rule.

    Rule id, name, severity and query are copied at trigger time so later
    edits to the rule do not rewrite history.
    """

    id: str
    rule_id: str
    rule_name: str
    severity: str
    message: str
    query: str
    value: float
    threshold: float
    triggered_at: datetime
    matching_logs: list[LogEntry] = field(default_factory=list)
    acknowledged: bool = False
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved: bool = False
    resolved_at: datetime | None = None
    notifications_sent: list[NotificationRecord] = field(default_factory=list)

    @property
    def active(self) -> bool:
        return not self.resolved

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "severity": self.severity,
            "message": self.message,
            "query": self.query,
            "value": self.value,
            "threshold": self.threshold,
            "triggered_at": self.triggered_at.isoformat(),
            "matching_logs": [e.to_dict() for e in self.matching_logs],
            "acknowledged": self.acknowledged,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": _iso(self.acknowledged_at),
            "resolved": self.resolved,
            "resolved_at": _iso(self.resolved_at),
            "notifications_sent": [n.to_dict() for n in self.notifications_sent],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Alert":
        return cls(
            id=str(data["id"]),
            rule_id=str(data["rule_id"]),
            rule_name=str(data["rule_name"]),
            severity=str(data["severity"]),
            message=str(data["message"]),
            query=str(data.get("query", "")),
            value=float(data["value"]),
            threshold=float(data["threshold"]),
            triggered_at=parse_timestamp(data["triggered_at"]) or datetime.min,
            matching_logs=[LogEntry.from_dict(e) for e in data.get("matching_logs", [])],
            acknowledged=bool(data.get("acknowledged", False)),
            acknowledged_by=data.get("acknowledged_by"),
            acknowledged_at=parse_timestamp(data.get("acknowledged_at")),
            resolved=bool(data.get("resolved", False)),
            resolved_at=parse_timestamp(data.get("resolved_at")),
            notifications_sent=[
                NotificationRecord.from_dict(n) for n in data.get("notifications_sent", [])
            ],
        )


# ---------------------------------------------------------------------------
# Report schedules and executions
# ---------------------------------------------------------------------------

@dataclass
class ReportScheduleConfig:
    id: str
    report_id: str
    name: str
    cron: str
    recipients: list[str] = field(default_factory=list)
    format: str = "csv"
    enabled: bool = True
    last_run: datetime | None = None
    next_run: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def schedule_from_dict(data: Mapping[str, Any]) -> ReportScheduleConfig:
    fmt = str(data.get("format", "csv"))
    if fmt not in REPORT_FORMATS:
        raise ValueError(f"unsupported report format {fmt!r}")
    return ReportScheduleConfig(
        id=str(data.get("id") or new_id("schedule")),
        report_id=str(data["report_id"]),
        name=str(data.get("name", data["report_id"])),
        cron=str(data["cron"]),
        recipients=list(data.get("recipients", [])),
        format=fmt,
        enabled=bool(data.get("enabled", True)),
        last_run=parse_timestamp(data.get("last_run")),
        next_run=parse_timestamp(data.get("next_run")),
    )


PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"

_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({RUNNING}),
    RUNNING: frozenset({COMPLETED, FAILED}),
    COMPLETED: frozenset(),
    FAILED: frozenset(),
}


@dataclass(frozen=True)
class ExecutionResult:
    file_path: str | None = None
    record_count: int | None = None
    error: str | None = None


@dataclass
class ScheduledReportExecution:
    """One run of a report: pending -> running -> completed | failed."""

    id: str
    report_id: str
    scheduled_at: datetime
    recipients: list[str]
    format: str
    status: str = PENDING
    executed_at: datetime | None = None
    result: ExecutionResult | None = None

    @property
    def finished(self) -> bool:
        return self.status in (COMPLETED, FAILED)

    def transition(
        self,
        status: str,
        *,
        at: datetime | None = None,
        result: ExecutionResult | None = None,
    ) -> None:
        if status not in _TRANSITIONS.get(self.status, frozenset()):
            raise InvalidTransitionError(
                f"execution {self.id}: cannot move from {self.status!r} to {status!r}"
            )
        self.status = status
        if status == RUNNING:
            self.executed_at = at
        if result is not None:
            self.result = result
