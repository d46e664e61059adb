"""Email alert channel via SMTP."""
from __future__ import annotations

import logging
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any

from ..config import Settings
from ..errors import DeliveryError
from .base import NotificationChannel

logger = logging.getLogger(__name__)


class EmailChannel(NotificationChannel):
    """Send notifications via SMTP.

    The delivery target is the list of recipient addresses.  Alert payloads
    are rendered into a plain-text body; payloads that already carry
    ``subject``/``body`` (report deliveries) are sent as given, with the
    file named by ``attachment`` attached.

    Example::

        channel = EmailChannel(
            host="smtp.gmail.com",
            port=587,
            username="bot@example.com",
            password="...",
            from_addr="alerts@example.com",
        )
        channel.deliver(["ops@example.com"], build_payload(alert))
    """

    name = "email"

    def __init__(
        self,
        host: str = "localhost",
        port: int = 587,
        username: str = "",
        password: str = "",
        from_addr: str = "alertpilot@localhost",
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from = from_addr
        self._use_tls = use_tls
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailChannel":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_addr=settings.smtp_from,
            use_tls=settings.smtp_use_tls,
        )

    def deliver(self, target: list[str], payload: dict[str, Any]) -> None:
        if not target:
            raise DeliveryError("email delivery needs at least one recipient")
        subject = payload.get("subject") or (
            f"[alertpilot] {str(payload.get('severity', '')).upper()} alert: "
            f"{payload.get('rule_name', 'unknown rule')}"
        )
        body = payload.get("body") or self._build_body(payload)
        try:
            self._send_smtp(list(target), subject, body, payload.get("attachment"))
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"SMTP delivery to {', '.join(target)} failed: {exc}") from exc

    def _build_body(self, payload: dict[str, Any]) -> str:
        lines = [
            f"alertpilot alert: {payload.get('rule_name', '')}",
            "=" * 40,
            f"Severity : {payload.get('severity', '')}",
            f"Condition: {payload.get('message', '')}",
            f"Value    : {payload.get('value')} (threshold {payload.get('threshold')})",
            f"Query    : {payload.get('query', '')}",
            f"Triggered: {payload.get('triggered_at', '')}",
        ]
        samples = payload.get("samples") or []
        if samples:
            lines += ["", "Sample entries:"]
            lines += [f"  {s[:500]}" for s in samples]
        return "\n".join(lines)

    def _send_smtp(
        self,
        to_addrs: list[str],
        subject: str,
        body: str,
        attachment: str | None = None,
    ) -> None:
        msg = MIMEMultipart()
        msg["Subject"] = subject
        msg["From"] = self._from
        msg["To"] = ", ".join(to_addrs)
        msg.attach(MIMEText(body, "plain"))
        if attachment:
            path = Path(attachment)
            part = MIMEApplication(path.read_bytes(), Name=path.name)
            part["Content-Disposition"] = f'attachment; filename="{path.name}"'
            msg.attach(part)

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
            if self._use_tls:
                smtp.ehlo()
                smtp.starttls()
                smtp.ehlo()
            if self._username:
                smtp.login(self._username, self._password)
            smtp.sendmail(self._from, to_addrs, msg.as_string())
            logger.debug("Email sent to %s", to_addrs)
