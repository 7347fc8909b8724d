"""Notification dispatch across channel types.

Maps channel types to Notifier implementations and isolates every
delivery: an unknown type or a notifier that raises is reported as a
failed DeliveryResult, never propagated.
"""

import logging
from typing import Any, Iterable, Optional

from src.alerting.channels.base import DeliveryResult, Notifier
from src.alerting.channels.email import EmailNotifier
from src.alerting.channels.in_app import InAppNotifier
from src.alerting.channels.pagerduty import PagerDutyNotifier
from src.alerting.channels.slack import SlackNotifier
from src.alerting.channels.sms import SMSNotifier
from src.alerting.channels.webhook import WebhookNotifier
from src.alerting.config import AlertSeverity, ChannelType
from src.alerting.exceptions import ConfigurationError, DispatchError
from src.alerting.models import NotificationChannel, SystemAlert
from src.logging_config.performance import PerformanceTimer

logger = logging.getLogger(__name__)

TEST_ALERT_TYPE = "channel_test"


def build_test_alert(channel: NotificationChannel) -> SystemAlert:
    """Synthetic alert used to verify a channel end to end."""
    return SystemAlert(
        alert_type=TEST_ALERT_TYPE,
        severity=AlertSeverity.LOW,
        title="Test Notification",
        description=f"This is a test notification for the {channel.type_name} channel.",
        source_service="alerting-engine",
    )


class NotificationDispatcher:
    """Registry of notifiers keyed by channel type."""

    def __init__(self, notifiers: Optional[Iterable[Notifier]] = None):
        self._notifiers: dict[ChannelType, Notifier] = {}
        for notifier in notifiers or []:
            self.register(notifier)

    def register(self, notifier: Notifier) -> None:
        self._notifiers[notifier.kind] = notifier

    def get(self, kind: ChannelType) -> Optional[Notifier]:
        return self._notifiers.get(kind)

    @property
    def available_channels(self) -> list[ChannelType]:
        return list(self._notifiers.keys())

    async def dispatch(
        self,
        channel: NotificationChannel,
        alert: SystemAlert,
        recipients: list[str],
    ) -> DeliveryResult:
        """Deliver one alert through one channel.

        Returns:
            The notifier's result, or a failed result carrying a
            ConfigurationError / DispatchError message.
        """
        name = channel.type_name
        notifier = self._notifiers.get(channel.type) if isinstance(channel.type, ChannelType) else None
        if notifier is None:
            error = ConfigurationError(f"Unknown notification channel type: {name}")
            logger.warning("%s", error.message, extra={"channel": name})
            return DeliveryResult.failed(name, error.message)

        try:
            with PerformanceTimer(f"dispatch {name}"):
                result = await notifier.send(alert, dict(channel.config), list(recipients))
        except Exception as exc:
            error = DispatchError(f"{name} notifier raised {type(exc).__name__}: {exc}")
            logger.exception("Error sending %s notification for alert %s", name, alert.id)
            return DeliveryResult.failed(name, error.message)

        if not result.channel:
            result.channel = name
        if not result.success:
            logger.warning(
                "%s notification for alert %s failed: %s", name, alert.id, result.error,
                extra={"channel": name},
            )
        return result

    async def send_test(
        self, channel: NotificationChannel, recipients: Optional[list[str]] = None
    ) -> DeliveryResult:
        alert = build_test_alert(channel)
        return await self.dispatch(channel, alert, recipients or ["test@example.com"])


def build_dispatcher(settings: Any) -> NotificationDispatcher:
    """Create a dispatcher with every channel wired from settings."""
    timeout = settings.http_timeout_seconds
    return NotificationDispatcher([
        EmailNotifier(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=settings.email_sender,
            use_tls=settings.smtp_use_tls,
            timeout_seconds=timeout,
        ),
        SlackNotifier(webhook_url=settings.slack_webhook_url, timeout_seconds=timeout),
        WebhookNotifier(signing_secret=settings.webhook_signing_secret, timeout_seconds=timeout),
        SMSNotifier(
            account_sid=settings.sms_account_sid,
            auth_token=settings.sms_auth_token,
            from_number=settings.sms_from_number,
            timeout_seconds=timeout,
        ),
        PagerDutyNotifier(routing_key=settings.pagerduty_routing_key, timeout_seconds=timeout),
        InAppNotifier(),
    ])
