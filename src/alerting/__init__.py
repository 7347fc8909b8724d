"""Alerting & Escalation Engine.

Detects threshold breaches in service health metrics, manages the alert
lifecycle, and escalates open alerts across notification channels.
"""

from .config import (
    AlertSeverity,
    AlertStatus,
    AlertingConfig,
    ChannelType,
    ConditionOperator,
    TimeRange,
)
from .clock import Clock, ManualClock, SystemClock
from .exceptions import (
    AlertingError,
    AlertNotFoundError,
    ConfigurationError,
    DispatchError,
    DuplicateActiveAlertError,
    FetchError,
    InvalidTransitionError,
    PersistenceError,
)
from .models import (
    AlertCondition,
    AlertRule,
    EscalationLevel,
    EscalationPolicy,
    IncidentContext,
    MetricSample,
    NotificationChannel,
    SystemAlert,
)
from .store import InMemoryAlertStore, InMemoryMetricSource
from .channels import NotificationDispatcher, build_dispatcher
from .escalation import EscalationManager
from .engine import AlertingEngine

__all__ = [
    # Config
    "AlertSeverity",
    "AlertStatus",
    "AlertingConfig",
    "ChannelType",
    "ConditionOperator",
    "TimeRange",
    # Clock
    "Clock",
    "ManualClock",
    "SystemClock",
    # Errors
    "AlertingError",
    "AlertNotFoundError",
    "ConfigurationError",
    "DispatchError",
    "DuplicateActiveAlertError",
    "FetchError",
    "InvalidTransitionError",
    "PersistenceError",
    # Models
    "AlertCondition",
    "AlertRule",
    "EscalationLevel",
    "EscalationPolicy",
    "IncidentContext",
    "MetricSample",
    "NotificationChannel",
    "SystemAlert",
    # Stores
    "InMemoryAlertStore",
    "InMemoryMetricSource",
    # Dispatch & escalation
    "NotificationDispatcher",
    "build_dispatcher",
    "EscalationManager",
    "AlertingEngine",
]
