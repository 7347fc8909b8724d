"""Slack notification channel.

Delivers alerts via Slack incoming webhooks.
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from src.alerting.channels.base import DeliveryResult, JsonPoster, is_success, post_json
from src.alerting.config import ChannelType
from src.alerting.models import SystemAlert

logger = logging.getLogger(__name__)


class SlackNotifier:
    """Slack delivery via incoming webhooks (demo mode without a URL)."""

    SEVERITY_EMOJI = {
        "low": ":information_source:",
        "medium": ":warning:",
        "high": ":rotating_light:",
        "critical": ":fire:",
    }

    def __init__(
        self,
        webhook_url: str = "",
        timeout_seconds: float = 10.0,
        poster: Optional[JsonPoster] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self._post = poster or post_json
        self.sent: list[dict] = []

    @property
    def kind(self) -> ChannelType:
        return ChannelType.SLACK

    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    def build_payload(self, alert: SystemAlert, config: dict[str, Any]) -> dict:
        emoji = self.SEVERITY_EMOJI.get(alert.severity.value, ":bell:")
        mention = config.get("mention")
        headline = f"{emoji} {alert.title}"
        if mention:
            headline = f"{mention} {headline}"

        payload = {
            "text": headline,
            "blocks": [
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": f"*{alert.title}*\n{alert.description}",
                    },
                },
                {
                    "type": "context",
                    "elements": [
                        {
                            "type": "mrkdwn",
                            "text": (
                                f"Severity: {alert.severity.value} | "
                                f"Service: {alert.source_service or 'Unknown'}"
                            ),
                        },
                    ],
                },
            ],
        }
        if config.get("channel"):
            payload["channel"] = config["channel"]
        return payload

    async def send(
        self, alert: SystemAlert, config: dict[str, Any], recipients: list[str]
    ) -> DeliveryResult:
        payload = self.build_payload(alert, config)
        url = config.get("webhook_url") or self.webhook_url

        if not url:
            logger.info("[SLACK] (demo) %s: %s", config.get("channel", "#alerts"), payload["text"])
            self.sent.append({"payload": payload, "demo": True})
            return DeliveryResult(success=True, channel=self.kind.value, message_id=f"slack_{alert.id}")

        try:
            status = await self._post(url, payload, {}, self.timeout_seconds)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Slack delivery failed for alert %s: %s", alert.id, e)
            return DeliveryResult.failed(self.kind.value, str(e))

        if not is_success(status):
            return DeliveryResult.failed(self.kind.value, f"Slack HTTP {status}")

        self.sent.append({"payload": payload, "demo": False})
        return DeliveryResult(success=True, channel=self.kind.value, message_id=f"slack_{alert.id}")
