"""Chat alert channel — Slack-compatible incoming webhook."""
from __future__ import annotations

from typing import Any

from . import webclient
from .base import NotificationChannel

_SEVERITY_EMOJI = {
    "low": ":information_source:",
    "medium": ":warning:",
    "high": ":rotating_light:",
    "critical": ":fire:",
}


class ChatChannel(NotificationChannel):
    """Send alert notifications to a chat incoming webhook.

    The delivery target is the chat channel name configured on the rule
    (e.g. ``#ops-alerts``); the webhook URL comes from configuration
    (``ALERTPILOT_CHAT_WEBHOOK_URL``).

    Example payload::

        {
            "channel": "#ops-alerts",
            "text": ":rotating_light: *alertpilot: High error rate*",
            "blocks": [
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": "*Severity:* high\\n*Condition:* ..."
                    }
                }
            ]
        }
    """

    name = "chat"

    def __init__(self, webhook_url: str, timeout: float = 5.0) -> None:
        if not webhook_url:
            raise ValueError("Chat webhook URL must not be empty")
        self._url = webhook_url
        self._timeout = timeout

    def deliver(self, target: str, payload: dict[str, Any]) -> None:
        self._post(self.build_message(target, payload))

    def build_message(self, target: str, payload: dict[str, Any]) -> dict[str, Any]:
        severity = str(payload.get("severity", ""))
        emoji = _SEVERITY_EMOJI.get(severity, ":bell:")
        samples = "\n".join(f"> {s[:200]}" for s in payload.get("samples", []))
        lines = [
            f"*Severity:* {severity}",
            f"*Condition:* {payload.get('message', '')}",
            f"*Query:* `{payload.get('query', '')}`",
        ]
        if samples:
            lines.append(f"*Sample entries:*\n{samples}")
        return {
            "channel": target,
            "text": f"{emoji} *alertpilot: {payload.get('rule_name', 'alert')}*",
            "blocks": [
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": "\n".join(lines)},
                }
            ],
        }

    def _post(self, message: dict[str, Any]) -> None:
        webclient.post(self._url, json_body=message, timeout=self._timeout)
