"""Fan an alert out over every channel configured on its rule.

Each configured channel gets exactly one delivery attempt and exactly one
NotificationRecord, whatever happens on the other channels.  A channel with
no registered transport, or a rule with no target for it, is recorded as a
failed attempt rather than raised.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from ..config import Settings
from ..models import Alert, NotificationRecord, NotificationSettings
from .base import NotificationChannel, build_payload
from .chat import ChatChannel
from .email_channel import EmailChannel
from .sms import SmsChannel
from .webhook import WebhookChannel

logger = logging.getLogger(__name__)

RecordCallback = Callable[[NotificationRecord], None]

_MISSING_TARGET: dict[str, str] = {
    "email": "email channel has no recipients",
    "sms": "sms channel has no recipient phone numbers",
    "webhook": "webhook channel has no webhook URL",
    "chat": "chat channel has no chat target",
}


class NotificationDispatcher:
    """Deliver alerts through registered channels and record each outcome.

    Usage::

        dispatcher = NotificationDispatcher()
        dispatcher.register_channel(EmailChannel(host="smtp.example.com"))
        dispatcher.register_channel(WebhookChannel())

        records = dispatcher.dispatch(alert, rule.notifications)
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._channels: dict[str, NotificationChannel] = {}
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotificationDispatcher":
        """Dispatcher with every transport the configuration allows."""
        dispatcher = cls()
        dispatcher.register_channel(EmailChannel.from_settings(settings))
        dispatcher.register_channel(WebhookChannel(timeout=settings.webhook_timeout))
        dispatcher.register_channel(
            SmsChannel(
                api_base=settings.sms_api_base,
                account_sid=settings.sms_account_sid,
                auth_token=settings.sms_auth_token,
                from_number=settings.sms_from_number,
                timeout=settings.webhook_timeout,
            )
        )
        if settings.chat_webhook_url:
            dispatcher.register_channel(
                ChatChannel(settings.chat_webhook_url, timeout=settings.webhook_timeout)
            )
        return dispatcher

    def register_channel(self, channel: NotificationChannel) -> None:
        if not channel.name:
            raise ValueError(f"{channel!r} has no channel name")
        self._channels[channel.name] = channel
        logger.debug("Registered %s channel: %r", channel.name, channel)

    @property
    def channels(self) -> list[str]:
        return sorted(self._channels)

    def dispatch(
        self,
        alert: Alert,
        notifications: NotificationSettings,
        on_record: RecordCallback | None = None,
    ) -> list[NotificationRecord]:
        """Attempt delivery on every configured channel.

        *on_record* is called with each record as soon as its attempt
        finishes, so history is written even if a later channel hangs.
        """
        payload = build_payload(alert)
        records: list[NotificationRecord] = []
        for channel_name in notifications.channels:
            record = self._attempt(channel_name, notifications, payload)
            records.append(record)
            if on_record is not None:
                try:
                    on_record(record)
                except Exception as exc:
                    logger.warning(
                        "Recording %s delivery for alert %s failed: %s",
                        channel_name, alert.id, exc,
                    )
        sent = sum(1 for r in records if r.success)
        logger.info("Alert %s: %d/%d notifications delivered", alert.id, sent, len(records))
        return records

    def _attempt(
        self,
        channel_name: str,
        notifications: NotificationSettings,
        payload: dict[str, Any],
    ) -> NotificationRecord:
        channel = self._channels.get(channel_name)
        if channel is None:
            return self._failed(channel_name, f"no transport registered for channel {channel_name!r}")

        target = notifications.target_for(channel_name)
        if target is None:
            return self._failed(
                channel_name,
                _MISSING_TARGET.get(channel_name, f"{channel_name} channel has no target"),
            )

        try:
            channel.deliver(target, payload)
        except Exception as exc:
            logger.warning(
                "Delivery on %s failed for alert %s: %s",
                channel_name, payload.get("alert_id"), exc,
            )
            return self._failed(channel_name, str(exc) or exc.__class__.__name__)
        return NotificationRecord(channel=channel_name, sent_at=self._clock(), success=True)

    def _failed(self, channel_name: str, error: str) -> NotificationRecord:
        return NotificationRecord(
            channel=channel_name, sent_at=self._clock(), success=False, error=error,
        )
