"""Alerting domain exceptions.

Every error raised by the engine derives from ``AlertingError`` and
carries an ``ErrorCode`` so the HTTP layer can render it through the
shared error envelope.
"""

from typing import Optional

from src.api_errors.config import ErrorCode
from src.api_errors.exceptions import AlertingAPIError


class AlertingError(AlertingAPIError):
    """Base class for alerting engine errors."""

    default_code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, error_code: Optional[ErrorCode] = None, **kwargs):
        super().__init__(message, error_code or self.default_code, **kwargs)


class FetchError(AlertingError):
    """Metric samples could not be read from the metric source."""

    default_code = ErrorCode.METRIC_FETCH_ERROR


class PersistenceError(AlertingError):
    """An alert record could not be read or written."""

    default_code = ErrorCode.DATABASE_ERROR


class DuplicateActiveAlertError(PersistenceError):
    """An active alert already exists for the rule."""

    default_code = ErrorCode.DUPLICATE_ACTIVE_ALERT

    def __init__(self, alert_type: str):
        super().__init__(f"An active alert already exists for {alert_type}")
        self.alert_type = alert_type


class DispatchError(AlertingError):
    """A notification could not be delivered through a channel."""

    default_code = ErrorCode.DISPATCH_ERROR


class ConfigurationError(AlertingError):
    """A rule, policy, or channel is malformed."""

    default_code = ErrorCode.VALIDATION_ERROR


class AlertNotFoundError(AlertingError):
    """No alert exists with the given id."""

    default_code = ErrorCode.ALERT_NOT_FOUND

    def __init__(self, alert_id: str):
        super().__init__(
            f"Alert {alert_id} not found",
            details=[{"resource_type": "alert", "resource_id": alert_id}],
        )
        self.alert_id = alert_id


class InvalidTransitionError(AlertingError):
    """The requested lifecycle transition is not allowed."""

    default_code = ErrorCode.INVALID_TRANSITION

    def __init__(self, alert_id: str, current: str, action: str):
        super().__init__(f"Cannot {action} alert {alert_id} in status '{current}'")
        self.alert_id = alert_id
        self.current = current
        self.action = action
