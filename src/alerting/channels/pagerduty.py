"""PagerDuty notification channel.

Triggers incidents through the Events API v2, keyed by alert id so
repeat escalations update the same PagerDuty incident.
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from src.alerting.channels.base import DeliveryResult, JsonPoster, is_success, post_json
from src.alerting.config import AlertSeverity, ChannelType
from src.alerting.models import SystemAlert

logger = logging.getLogger(__name__)

EVENTS_API_URL = "https://events.pagerduty.com/v2/enqueue"

PAGERDUTY_SEVERITY = {
    AlertSeverity.LOW: "info",
    AlertSeverity.MEDIUM: "warning",
    AlertSeverity.HIGH: "error",
    AlertSeverity.CRITICAL: "critical",
}


class PagerDutyNotifier:
    """PagerDuty Events API delivery (demo mode without a routing key)."""

    def __init__(
        self,
        routing_key: str = "",
        events_url: str = EVENTS_API_URL,
        timeout_seconds: float = 10.0,
        poster: Optional[JsonPoster] = None,
    ):
        self.routing_key = routing_key
        self.events_url = events_url
        self.timeout_seconds = timeout_seconds
        self._post = poster or post_json
        self.sent: list[dict] = []

    @property
    def kind(self) -> ChannelType:
        return ChannelType.PAGERDUTY

    def is_configured(self) -> bool:
        return bool(self.routing_key)

    def build_event(self, alert: SystemAlert, config: dict[str, Any]) -> dict:
        return {
            "routing_key": config.get("routing_key") or self.routing_key,
            "event_action": "trigger",
            "dedup_key": alert.id,
            "payload": {
                "summary": alert.title,
                "source": alert.source_service or "skc-alerting",
                "severity": PAGERDUTY_SEVERITY[alert.severity],
                "class": alert.alert_type,
                "group": config.get("service_key", ""),
                "custom_details": {
                    "description": alert.description,
                    "alert_data": alert.alert_data,
                },
            },
        }

    async def send(
        self, alert: SystemAlert, config: dict[str, Any], recipients: list[str]
    ) -> DeliveryResult:
        event = self.build_event(alert, config)
        if not event["routing_key"]:
            logger.info(
                "[PAGERDUTY] (demo) service=%s: %s",
                config.get("service_key", ""),
                alert.title,
            )
            self.sent.append({"event": event, "demo": True})
            return DeliveryResult(success=True, channel=self.kind.value, message_id=alert.id)

        try:
            status = await self._post(self.events_url, event, {}, self.timeout_seconds)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("PagerDuty delivery failed for alert %s: %s", alert.id, e)
            return DeliveryResult.failed(self.kind.value, str(e))

        if not is_success(status):
            return DeliveryResult.failed(self.kind.value, f"PagerDuty HTTP {status}")

        self.sent.append({"event": event, "demo": False})
        return DeliveryResult(success=True, channel=self.kind.value, message_id=alert.id)
