"""Alert lifecycle state machine.

    active ──> acknowledged ──> resolved
      │  └──────────────────────> resolved
      └──> dismissed ───────────> resolved

Transitions mutate the alert in place and stamp the actor and time.
Anything not in ``ALLOWED_TRANSITIONS`` raises InvalidTransitionError.
"""

import logging
from datetime import datetime
from typing import Optional

from src.alerting.config import SYSTEM_ACTOR, AlertStatus
from src.alerting.exceptions import InvalidTransitionError
from src.alerting.models import SystemAlert

logger = logging.getLogger(__name__)

AUTO_RESOLVE_NOTES = "Condition no longer met"

# action -> statuses it may be applied from
ALLOWED_TRANSITIONS: dict[str, frozenset] = {
    "acknowledge": frozenset({AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED}),
    "resolve": frozenset({
        AlertStatus.ACTIVE,
        AlertStatus.ACKNOWLEDGED,
        AlertStatus.DISMISSED,
    }),
    "dismiss": frozenset({AlertStatus.ACTIVE}),
}


def can_transition(alert: SystemAlert, action: str) -> bool:
    return alert.status in ALLOWED_TRANSITIONS.get(action, frozenset())


def _check(alert: SystemAlert, action: str) -> None:
    if not can_transition(alert, action):
        raise InvalidTransitionError(alert.id, alert.status.value, action)


def acknowledge(
    alert: SystemAlert, by: str, now: datetime, notes: Optional[str] = None
) -> SystemAlert:
    _check(alert, "acknowledge")
    alert.status = AlertStatus.ACKNOWLEDGED
    alert.acknowledged_by = by
    alert.acknowledged_at = now
    alert.acknowledgement_notes = notes
    alert.updated_at = now
    return alert


def resolve(
    alert: SystemAlert, by: str, now: datetime, notes: Optional[str] = None
) -> SystemAlert:
    _check(alert, "resolve")
    alert.status = AlertStatus.RESOLVED
    alert.resolved_by = by
    alert.resolved_at = now
    alert.resolution_notes = notes
    alert.updated_at = now
    return alert


def dismiss(
    alert: SystemAlert, by: str, now: datetime, notes: Optional[str] = None
) -> SystemAlert:
    """Close an active alert without resolving the underlying condition.

    The actor and notes are kept in the resolution fields.
    """
    _check(alert, "dismiss")
    alert.status = AlertStatus.DISMISSED
    alert.resolved_by = by
    alert.resolved_at = now
    alert.resolution_notes = notes
    alert.updated_at = now
    return alert


def auto_resolve(alert: SystemAlert, now: datetime) -> SystemAlert:
    """System-initiated resolve for alerts flagged ``auto_resolve``."""
    if not alert.auto_resolve:
        raise InvalidTransitionError(alert.id, alert.status.value, "auto-resolve")
    return resolve(alert, SYSTEM_ACTOR, now, AUTO_RESOLVE_NOTES)
