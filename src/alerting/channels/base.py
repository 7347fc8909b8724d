"""Notifier protocol and shared delivery helpers.

Every channel exposes ``send(alert, config, recipients)`` and reports
the outcome as a DeliveryResult. Provider errors are folded into the
result rather than raised.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable

import aiohttp

from src.alerting.config import ChannelType
from src.alerting.models import SystemAlert

logger = logging.getLogger(__name__)

# (url, payload, headers, timeout_seconds) -> HTTP status
JsonPoster = Callable[[str, dict, dict, float], Awaitable[int]]


@dataclass
class DeliveryResult:
    """Result of a channel delivery attempt."""
    success: bool
    channel: str = ""
    error: Optional[str] = None
    message_id: str = ""
    delivered_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @classmethod
    def failed(cls, channel: str, error: str) -> "DeliveryResult":
        return cls(success=False, channel=channel, error=error)

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "success": self.success,
            "error": self.error,
            "message_id": self.message_id,
        }


@runtime_checkable
class Notifier(Protocol):
    """Protocol for notification channels."""

    @property
    def kind(self) -> ChannelType: ...

    def is_configured(self) -> bool: ...

    async def send(
        self, alert: SystemAlert, config: dict[str, Any], recipients: list[str]
    ) -> DeliveryResult: ...


def encode_payload(payload: dict) -> bytes:
    """Serialize a JSON body exactly as it is sent and signed."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


async def post_json(
    url: str,
    payload: dict,
    headers: Optional[dict] = None,
    timeout_seconds: float = 10.0,
) -> int:
    """POST a JSON body and return the HTTP status.

    Raises:
        aiohttp.ClientError: On connection failures.
        asyncio.TimeoutError: When the request exceeds ``timeout_seconds``.
    """
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        send_headers = {"Content-Type": "application/json", **(headers or {})}
        async with session.post(url, data=encode_payload(payload), headers=send_headers) as resp:
            if resp.status >= 400:
                body = await resp.text()
                logger.debug("POST %s returned %d: %s", url, resp.status, body[:200])
            return resp.status


def is_success(status: int) -> bool:
    return 200 <= status < 300


def alert_subject(alert: SystemAlert) -> str:
    return f"[{alert.severity.value.upper()}] {alert.title}"
