"""SMS notification channel.

Twilio-compatible SMS delivery over the REST API. Without an account
SID the channel runs in demo mode.
"""

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from src.alerting.channels.base import DeliveryResult, is_success
from src.alerting.config import ChannelType
from src.alerting.models import SystemAlert

logger = logging.getLogger(__name__)

PHONE_REGEX = re.compile(r"^\+?[1-9]\d{6,14}$")
SMS_MAX_LENGTH = 160
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

# (url, form, (user, password), timeout_seconds) -> HTTP status
FormPoster = Callable[[str, dict, tuple, float], Awaitable[int]]


async def post_form(url: str, form: dict, auth: tuple, timeout_seconds: float = 10.0) -> int:
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.post(url, data=form, auth=aiohttp.BasicAuth(*auth)) as resp:
            return resp.status


def format_sms(alert: SystemAlert) -> str:
    message = f"ALERT: {alert.title} - {alert.description}"
    if len(message) > SMS_MAX_LENGTH:
        message = message[: SMS_MAX_LENGTH - 3] + "..."
    return message


class SMSNotifier:
    """SMS delivery channel."""

    def __init__(
        self,
        account_sid: str = "",
        auth_token: str = "",
        from_number: str = "",
        timeout_seconds: float = 10.0,
        poster: Optional[FormPoster] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout_seconds = timeout_seconds
        self._post = poster or post_form
        self.sent: list[dict] = []

    @property
    def kind(self) -> ChannelType:
        return ChannelType.SMS

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def validate_recipient(self, recipient: str) -> bool:
        return bool(PHONE_REGEX.match(recipient))

    async def send(
        self, alert: SystemAlert, config: dict[str, Any], recipients: list[str]
    ) -> DeliveryResult:
        numbers = [r for r in recipients if self.validate_recipient(r)]
        skipped = len(recipients) - len(numbers)
        if skipped:
            logger.debug("Skipping %d non-phone SMS recipients for alert %s", skipped, alert.id)

        body = format_sms(alert)
        if not self.is_configured():
            logger.info("[SMS] (demo) to=%s: %s", recipients, body)
            self.sent.append({"to": list(recipients), "body": body, "demo": True})
            return DeliveryResult(success=True, channel=self.kind.value, message_id=f"sms_{alert.id}")

        if not numbers:
            return DeliveryResult.failed(self.kind.value, "No valid phone numbers")

        url = TWILIO_MESSAGES_URL.format(sid=self.account_sid)
        failures = []
        for number in numbers:
            form = {"To": number, "From": config.get("from", self.from_number), "Body": body}
            try:
                status = await self._post(
                    url, form, (self.account_sid, self.auth_token), self.timeout_seconds
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                failures.append(f"{number}: {e}")
                continue
            if not is_success(status):
                failures.append(f"{number}: HTTP {status}")

        if failures:
            logger.error("SMS delivery failed for alert %s: %s", alert.id, failures)
            return DeliveryResult.failed(self.kind.value, "; ".join(failures))

        self.sent.append({"to": numbers, "body": body, "demo": False})
        return DeliveryResult(success=True, channel=self.kind.value, message_id=f"sms_{alert.id}")
