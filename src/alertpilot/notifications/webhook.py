"""Generic webhook alert channel — POSTs the alert as JSON."""
from __future__ import annotations

from typing import Any

from . import webclient
from .base import NotificationChannel


class WebhookChannel(NotificationChannel):
    """POST the alert payload to the rule's webhook URL.

    The request body is the payload built by ``build_payload``: a summary
    of the alert plus the complete record under the ``alert`` key.  Any
    non-2xx response counts as a failed delivery.
    """

    name = "webhook"

    def __init__(self, timeout: float = 5.0) -> None:
        self._timeout = timeout

    def deliver(self, target: str, payload: dict[str, Any]) -> None:
        webclient.post(target, json_body=payload, timeout=self._timeout)
