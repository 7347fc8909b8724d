"""Notification channels for alert escalation."""

from src.alerting.channels.base import DeliveryResult, Notifier, post_json
from src.alerting.channels.dispatcher import NotificationDispatcher, build_dispatcher
from src.alerting.channels.email import EmailNotifier
from src.alerting.channels.in_app import InAppNotification, InAppNotifier
from src.alerting.channels.pagerduty import PagerDutyNotifier
from src.alerting.channels.slack import SlackNotifier
from src.alerting.channels.sms import SMSNotifier
from src.alerting.channels.webhook import WebhookNotifier, sign_payload

__all__ = [
    "DeliveryResult",
    "EmailNotifier",
    "InAppNotification",
    "InAppNotifier",
    "NotificationDispatcher",
    "Notifier",
    "PagerDutyNotifier",
    "SMSNotifier",
    "SlackNotifier",
    "WebhookNotifier",
    "build_dispatcher",
    "post_json",
    "sign_payload",
]
