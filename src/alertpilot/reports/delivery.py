"""Deliver rendered report artifacts to their recipients by email."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from ..notifications.base import NotificationChannel
from .definition import ReportDefinition

logger = logging.getLogger(__name__)


class ReportDelivery(Protocol):
    def deliver(
        self,
        definition: ReportDefinition,
        path: str,
        recipients: list[str],
        fmt: str,
    ) -> None: ...


class EmailReportDelivery:
    """Send the report file as an attachment through an email channel.

    Delivery errors propagate so the execution is marked failed.
    """

    def __init__(self, channel: NotificationChannel) -> None:
        self._channel = channel

    def deliver(
        self,
        definition: ReportDefinition,
        path: str,
        recipients: list[str],
        fmt: str,
    ) -> None:
        if not recipients:
            logger.info("Report %s has no recipients — delivery skipped", definition.id)
            return
        payload = {
            "subject": f"[alertpilot] Report: {definition.name}",
            "body": (
                f"Scheduled report \"{definition.name}\" ({fmt}) is attached.\n"
                f"{definition.description}".rstrip()
            ),
            "attachment": path,
        }
        self._channel.deliver(recipients, payload)
        logger.info("Report %s (%s) sent to %s", definition.id, Path(path).name, recipients)
