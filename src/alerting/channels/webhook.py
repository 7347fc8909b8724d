"""Webhook notification channel.

HTTP POST delivery with optional HMAC-SHA256 signing.
"""

import asyncio
import hashlib
import hmac
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp

from src.alerting.channels.base import (
    DeliveryResult,
    JsonPoster,
    encode_payload,
    is_success,
    post_json,
)
from src.alerting.config import ChannelType
from src.alerting.models import SystemAlert

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-SKC-Signature"

URL_REGEX = re.compile(
    r"^https?://[a-zA-Z0-9]([a-zA-Z0-9\-]*[a-zA-Z0-9])?"
    r"(\.[a-zA-Z0-9]([a-zA-Z0-9\-]*[a-zA-Z0-9])?)*"
    r"(:\d+)?(/.*)?$"
)


def sign_payload(secret: str, payload: dict) -> str:
    """HMAC-SHA256 over the exact request body sent for ``payload``.

    Returns:
        Hex-encoded signature.
    """
    return hmac.new(secret.encode("utf-8"), encode_payload(payload), hashlib.sha256).hexdigest()


class WebhookNotifier:
    """Webhook delivery channel with HMAC signing."""

    def __init__(
        self,
        signing_secret: str = "",
        timeout_seconds: float = 10.0,
        poster: Optional[JsonPoster] = None,
    ):
        self.signing_secret = signing_secret
        self.timeout_seconds = timeout_seconds
        self._post = poster or post_json

    @property
    def kind(self) -> ChannelType:
        return ChannelType.WEBHOOK

    def is_configured(self) -> bool:
        # Target URLs come from each channel's config
        return True

    def validate_url(self, url: str) -> bool:
        return bool(URL_REGEX.match(url or ""))

    def build_payload(self, alert: SystemAlert) -> dict:
        return {
            "event": "alert.escalated",
            "alert": alert.to_dict(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def send(
        self, alert: SystemAlert, config: dict[str, Any], recipients: list[str]
    ) -> DeliveryResult:
        url = config.get("url", "")
        if not self.validate_url(url):
            return DeliveryResult.failed(self.kind.value, "Invalid or missing webhook URL")

        payload = self.build_payload(alert)
        headers = dict(config.get("headers", {}))
        secret = config.get("secret") or self.signing_secret
        if secret:
            headers[SIGNATURE_HEADER] = sign_payload(secret, payload)

        try:
            status = await self._post(url, payload, headers, self.timeout_seconds)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Webhook delivery to %s failed: %s", url, e)
            return DeliveryResult.failed(self.kind.value, str(e))

        if not is_success(status):
            return DeliveryResult.failed(self.kind.value, f"HTTP {status}")
        return DeliveryResult(success=True, channel=self.kind.value, message_id=f"webhook_{alert.id}")
