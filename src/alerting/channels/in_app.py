"""In-app notification channel.

Keeps notifications in a bounded in-memory inbox per recipient for
the dashboard to poll.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from src.alerting.channels.base import DeliveryResult
from src.alerting.config import ChannelType
from src.alerting.models import SystemAlert

logger = logging.getLogger(__name__)


@dataclass
class InAppNotification:
    """A notification waiting in a recipient's inbox."""
    recipient: str
    alert_id: str
    title: str
    message: str
    severity: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    read: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recipient": self.recipient,
            "alert_id": self.alert_id,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "read": self.read,
            "created_at": self.created_at.isoformat(),
        }


class InAppNotifier:
    """In-app delivery. Always succeeds once a recipient is given."""

    def __init__(self, max_per_recipient: int = 100):
        self.max_per_recipient = max_per_recipient
        self._inbox: dict[str, list[InAppNotification]] = defaultdict(list)

    @property
    def kind(self) -> ChannelType:
        return ChannelType.IN_APP

    def is_configured(self) -> bool:
        return True

    async def send(
        self, alert: SystemAlert, config: dict[str, Any], recipients: list[str]
    ) -> DeliveryResult:
        if not recipients:
            return DeliveryResult.failed(self.kind.value, "No in-app recipients")

        for recipient in recipients:
            inbox = self._inbox[recipient]
            inbox.append(InAppNotification(
                recipient=recipient,
                alert_id=alert.id,
                title=alert.title,
                message=alert.description,
                severity=alert.severity.value,
            ))
            if len(inbox) > self.max_per_recipient:
                del inbox[: len(inbox) - self.max_per_recipient]

        logger.debug("In-app notification stored for %d recipients", len(recipients))
        return DeliveryResult(success=True, channel=self.kind.value, message_id=f"in_app_{alert.id}")

    def inbox(self, recipient: str, unread_only: bool = False) -> list[InAppNotification]:
        items = list(self._inbox.get(recipient, []))
        if unread_only:
            items = [n for n in items if not n.read]
        return items

    def mark_read(self, recipient: str, notification_id: str) -> bool:
        for notification in self._inbox.get(recipient, []):
            if notification.id == notification_id:
                notification.read = True
                return True
        return False
