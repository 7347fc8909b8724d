"""Email notification channel.

SMTP delivery run in a worker thread. Without an SMTP host the channel
runs in demo mode and only logs what it would send.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Optional

from src.alerting.channels.base import DeliveryResult, alert_subject
from src.alerting.config import ChannelType
from src.alerting.models import SystemAlert

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Email delivery via SMTP (demo mode without a host)."""

    def __init__(
        self,
        smtp_host: str = "",
        smtp_port: int = 587,
        username: str = "",
        password: str = "",
        sender: str = "alerts@localhost",
        use_tls: bool = True,
        timeout_seconds: float = 10.0,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout_seconds = timeout_seconds
        self.sent: list[dict] = []

    @property
    def kind(self) -> ChannelType:
        return ChannelType.EMAIL

    def is_configured(self) -> bool:
        return bool(self.smtp_host)

    def build_message(
        self, alert: SystemAlert, config: dict[str, Any], recipients: list[str]
    ) -> EmailMessage:
        template = config.get("template", "default")
        msg = EmailMessage()
        msg["Subject"] = alert_subject(alert)
        msg["From"] = config.get("from", self.sender)
        msg["To"] = ", ".join(recipients)
        msg["X-Alert-Template"] = template
        msg.set_content(
            f"{alert.title}\n\n"
            f"{alert.description}\n\n"
            f"Severity: {alert.severity.value}\n"
            f"Service: {alert.source_service or 'Unknown'}\n"
            f"Status: {alert.status.value}\n"
            f"Alert ID: {alert.id}\n"
        )
        return msg

    async def send(
        self, alert: SystemAlert, config: dict[str, Any], recipients: list[str]
    ) -> DeliveryResult:
        if not recipients:
            return DeliveryResult.failed(self.kind.value, "No email recipients")

        msg = self.build_message(alert, config, recipients)
        if not self.is_configured():
            logger.info("[EMAIL] (demo) to=%s subject=%s", recipients, msg["Subject"])
            self.sent.append({"to": list(recipients), "subject": msg["Subject"], "demo": True})
            return DeliveryResult(success=True, channel=self.kind.value, message_id=f"email_{alert.id}")

        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email delivery failed for alert %s: %s", alert.id, e)
            return DeliveryResult.failed(self.kind.value, str(e))

        self.sent.append({"to": list(recipients), "subject": msg["Subject"], "demo": False})
        return DeliveryResult(success=True, channel=self.kind.value, message_id=f"email_{alert.id}")

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout_seconds) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.send_message(msg)
