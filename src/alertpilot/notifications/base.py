"""Notification channel base class and the channel-neutral alert payload."""
from __future__ import annotations

from typing import Any

from ..models import Alert

_SAMPLE_MESSAGES = 5


class NotificationChannel:
    """Base class for notification transports.

    Subclasses set ``name`` to the channel kind they serve (``email``,
    ``webhook``, ``sms``, ``chat``) and implement ``deliver``.  A delivery
    that does not succeed must raise — DeliveryError for expected transport
    failures — so the dispatcher can record it.
    """

    name: str = ""

    def deliver(self, target: Any, payload: dict[str, Any]) -> None:
        raise NotImplementedError


def build_payload(alert: Alert) -> dict[str, Any]:
    """Summarise an alert for delivery; ``alert`` carries the full record."""
    return {
        "alert_id": alert.id,
        "rule_id": alert.rule_id,
        "rule_name": alert.rule_name,
        "severity": alert.severity,
        "message": alert.message,
        "query": alert.query,
        "value": alert.value,
        "threshold": alert.threshold,
        "triggered_at": alert.triggered_at.isoformat(),
        "samples": [entry.message for entry in alert.matching_logs[:_SAMPLE_MESSAGES]],
        "alert": alert.to_dict(),
    }


def format_text(payload: dict[str, Any], limit: int | None = None) -> str:
    """One-line text rendering used by SMS and chat."""
    text = f"[{str(payload.get('severity', '')).upper()}] {payload.get('message', '')}"
    if limit is not None and len(text) > limit:
        text = text[: limit - 1] + "…"
    return text
