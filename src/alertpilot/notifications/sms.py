"""SMS alert channel via a Twilio-compatible REST gateway."""
from __future__ import annotations

import base64
import json
import logging
from typing import Any

from ..errors import DeliveryError
from . import webclient
from .base import NotificationChannel, format_text

logger = logging.getLogger(__name__)

SMS_MAX_LENGTH = 160


class SmsChannel(NotificationChannel):
    """Send one text message per recipient phone number.

    Messages are POSTed as form data to
    ``{api_base}/2010-04-01/Accounts/{account_sid}/Messages.json`` with HTTP
    basic auth.  The delivery fails when credentials are missing or when
    any single recipient could not be reached; the error names those
    recipients.
    """

    name = "sms"

    def __init__(
        self,
        api_base: str = "https://api.twilio.com",
        account_sid: str = "",
        auth_token: str = "",
        from_number: str = "",
        timeout: float = 5.0,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from = from_number
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._account_sid and self._auth_token and self._from)

    def deliver(self, target: list[str], payload: dict[str, Any]) -> None:
        if not self.configured:
            raise DeliveryError("SMS gateway credentials and sender number are not configured")

        body = format_text(payload, limit=SMS_MAX_LENGTH)
        failed: list[str] = []
        for number in target:
            try:
                self._send_one(number, body)
            except DeliveryError as exc:
                logger.warning("SMS to %s failed: %s", number, exc)
                failed.append(number)
        if failed:
            raise DeliveryError(f"SMS delivery failed for {', '.join(failed)}")

    def _send_one(self, number: str, body: str) -> None:
        url = f"{self._api_base}/2010-04-01/Accounts/{self._account_sid}/Messages.json"
        token = base64.b64encode(f"{self._account_sid}:{self._auth_token}".encode()).decode()
        raw = webclient.post(
            url,
            form={"To": number, "From": self._from, "Body": body},
            headers={"Authorization": f"Basic {token}"},
            timeout=self._timeout,
        )
        try:
            data = json.loads(raw or b"{}")
        except json.JSONDecodeError as exc:
            raise DeliveryError("SMS gateway returned a non-JSON response") from exc
        if not data.get("sid"):
            raise DeliveryError("SMS gateway did not return a message sid")
