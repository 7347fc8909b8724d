"""Alerting & Escalation Engine - Data models.

Dataclasses for metric samples, rules, alerts, escalation policies,
incidents, and the engine's reporting records.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union
import uuid

from src.alerting.config import (
    AUTO_RESOLVE_METRIC_TYPES,
    AlertSeverity,
    AlertStatus,
    ChannelType,
    ConditionOperator,
    TERMINAL_STATUSES,
    TimeRange,
    severity_at_least,
)
from src.alerting.exceptions import ConfigurationError

RANGE_OPERATORS = frozenset({ConditionOperator.BETWEEN, ConditionOperator.OUTSIDE})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def parse_channel_type(raw: Union[ChannelType, str]) -> Union[ChannelType, str]:
    """Map a raw channel type string onto ``ChannelType``.

    Unknown values are returned unchanged so the dispatcher can report
    them at send time instead of rejecting the whole policy.
    """
    if isinstance(raw, ChannelType):
        return raw
    try:
        return ChannelType(raw)
    except ValueError:
        return raw


def _scope_matches(allowed: Optional[list], value: Any) -> bool:
    """An empty or missing allow-list admits everything."""
    if not allowed:
        return True
    return value in allowed


# =============================================================================
# Metrics & Rules
# =============================================================================


@dataclass
class MetricSample:
    """A single time-stamped health metric reading."""
    service_name: str
    metric_type: str
    metric_value: float
    timestamp: datetime
    unit: str = ""
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "service_name": self.service_name,
            "metric_type": self.metric_type,
            "metric_value": self.metric_value,
            "unit": self.unit,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class AlertCondition:
    """Threshold condition that must hold across a trailing duration.

    Attributes:
        operator: Comparison operator.
        threshold: Threshold value (lower bound for range operators).
        threshold_max: Upper bound, required by ``between`` and ``outside``.
        duration_minutes: Trailing span over which every sample must breach.
        evaluation_window_minutes: Trailing span of samples fetched.
    """
    operator: ConditionOperator
    threshold: float
    threshold_max: Optional[float] = None
    duration_minutes: int = 1
    evaluation_window_minutes: int = 5

    def validate(self) -> None:
        """Raise ConfigurationError if the condition is malformed."""
        if self.duration_minutes <= 0:
            raise ConfigurationError("duration_minutes must be positive")
        if self.duration_minutes > self.evaluation_window_minutes:
            raise ConfigurationError(
                "duration_minutes must not exceed evaluation_window_minutes"
            )
        if self.operator in RANGE_OPERATORS:
            if self.threshold_max is None:
                raise ConfigurationError(
                    f"Operator '{self.operator.value}' requires threshold_max"
                )
            if self.threshold_max < self.threshold:
                raise ConfigurationError("threshold_max must be >= threshold")

    def to_dict(self) -> dict[str, Any]:
        return {
            "operator": self.operator.value,
            "threshold": self.threshold,
            "threshold_max": self.threshold_max,
            "duration_minutes": self.duration_minutes,
            "evaluation_window_minutes": self.evaluation_window_minutes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AlertCondition":
        return cls(
            operator=ConditionOperator(data["operator"]),
            threshold=float(data["threshold"]),
            threshold_max=data.get("threshold_max"),
            duration_minutes=int(data.get("duration_minutes", 1)),
            evaluation_window_minutes=int(data.get("evaluation_window_minutes", 5)),
        )


@dataclass
class AlertRule:
    """A named invariant over a metric scope."""
    id: str
    name: str
    condition: AlertCondition
    severity: AlertSeverity
    description: str = ""
    service_name: Optional[str] = None
    metric_type: Optional[str] = None
    enabled: bool = True

    @property
    def auto_resolve(self) -> bool:
        """Alerts on continuously sampled metrics close themselves."""
        return self.metric_type in AUTO_RESOLVE_METRIC_TYPES

    def validate(self) -> None:
        if not self.id:
            raise ConfigurationError("Rule id is required")
        if not self.name:
            raise ConfigurationError(f"Rule {self.id} has no name")
        self.condition.validate()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "service_name": self.service_name,
            "metric_type": self.metric_type,
            "condition": self.condition.to_dict(),
            "severity": self.severity.value,
            "enabled": self.enabled,
            "auto_resolve": self.auto_resolve,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AlertRule":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            service_name=data.get("service_name"),
            metric_type=data.get("metric_type"),
            condition=AlertCondition.from_dict(data["condition"]),
            severity=AlertSeverity(data["severity"]),
            enabled=data.get("enabled", True),
        )


# =============================================================================
# Alerts
# =============================================================================


@dataclass
class SystemAlert:
    """A persisted alert record.

    Attributes:
        alert_type: Id of the rule that raised the alert, or a manual type.
        trigger_condition: Snapshot of the rule condition and trigger value.
        alert_data: Metric context including the recent sample trend.
        auto_resolve: Whether the evaluation loop may close the alert.
    """
    alert_type: str
    severity: AlertSeverity
    title: str
    description: str = ""
    source_service: Optional[str] = None
    source_metric_id: Optional[str] = None
    status: AlertStatus = AlertStatus.ACTIVE
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    acknowledgement_notes: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    auto_resolve: bool = False
    trigger_condition: dict[str, Any] = field(default_factory=dict)
    alert_data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == AlertStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "alert_type": self.alert_type,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "source_service": self.source_service,
            "source_metric_id": self.source_metric_id,
            "status": self.status.value,
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": _iso(self.acknowledged_at),
            "acknowledgement_notes": self.acknowledgement_notes,
            "resolved_by": self.resolved_by,
            "resolved_at": _iso(self.resolved_at),
            "resolution_notes": self.resolution_notes,
            "auto_resolve": self.auto_resolve,
            "trigger_condition": self.trigger_condition,
            "alert_data": self.alert_data,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SystemAlert":
        return cls(
            id=data["id"],
            alert_type=data["alert_type"],
            severity=AlertSeverity(data["severity"]),
            title=data["title"],
            description=data.get("description", ""),
            source_service=data.get("source_service"),
            source_metric_id=data.get("source_metric_id"),
            status=AlertStatus(data.get("status", "active")),
            acknowledged_by=data.get("acknowledged_by"),
            acknowledged_at=_parse_dt(data.get("acknowledged_at")),
            acknowledgement_notes=data.get("acknowledgement_notes"),
            resolved_by=data.get("resolved_by"),
            resolved_at=_parse_dt(data.get("resolved_at")),
            resolution_notes=data.get("resolution_notes"),
            auto_resolve=data.get("auto_resolve", False),
            trigger_condition=data.get("trigger_condition") or {},
            alert_data=data.get("alert_data") or {},
            created_at=_parse_dt(data["created_at"]),
            updated_at=_parse_dt(data["updated_at"]),
        )


# =============================================================================
# Escalation
# =============================================================================


@dataclass
class ChannelFilter:
    """Restricts which alerts a channel delivers."""
    min_severity: Optional[AlertSeverity] = None
    services: Optional[list[str]] = None
    alert_types: Optional[list[str]] = None

    def admits(self, alert: SystemAlert) -> bool:
        if self.min_severity and not severity_at_least(alert.severity, self.min_severity):
            return False
        if not _scope_matches(self.services, alert.source_service):
            return False
        return _scope_matches(self.alert_types, alert.alert_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "min_severity": self.min_severity.value if self.min_severity else None,
            "services": self.services,
            "alert_types": self.alert_types,
        }


@dataclass
class NotificationChannel:
    """A delivery target within an escalation level.

    ``type`` is kept as a raw string when it does not name a known
    ``ChannelType``.
    """
    type: Union[ChannelType, str]
    config: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    filters: Optional[ChannelFilter] = None

    def __post_init__(self):
        self.type = parse_channel_type(self.type)

    @property
    def type_name(self) -> str:
        return self.type.value if isinstance(self.type, ChannelType) else str(self.type)

    def admits(self, alert: SystemAlert) -> bool:
        return self.filters is None or self.filters.admits(alert)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type_name,
            "enabled": self.enabled,
            "config": self.config,
            "filters": self.filters.to_dict() if self.filters else None,
        }


@dataclass
class LevelConditions:
    """Gating conditions re-checked when a level is executed."""
    if_not_acknowledged: bool = False
    if_not_resolved: bool = False
    if_severity_at_least: Optional[AlertSeverity] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "if_not_acknowledged": self.if_not_acknowledged,
            "if_not_resolved": self.if_not_resolved,
            "if_severity_at_least": (
                self.if_severity_at_least.value if self.if_severity_at_least else None
            ),
        }


@dataclass
class EscalationLevel:
    """A single level in an escalation policy.

    Attributes:
        level: Zero-based position within the policy.
        delay_minutes: Wait after the previous level before this one fires.
    """
    level: int
    delay_minutes: int = 0
    channels: list[NotificationChannel] = field(default_factory=list)
    recipients: list[str] = field(default_factory=list)
    conditions: Optional[LevelConditions] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "delay_minutes": self.delay_minutes,
            "channels": [c.to_dict() for c in self.channels],
            "recipients": list(self.recipients),
            "conditions": self.conditions.to_dict() if self.conditions else None,
        }


@dataclass
class PolicyScope:
    """Which alerts a policy applies to. Empty lists mean any.

    Alerts without a source service are not filtered by ``services``.
    """
    severities: Optional[list[AlertSeverity]] = None
    services: Optional[list[str]] = None
    alert_types: Optional[list[str]] = None

    def matches(self, alert: SystemAlert) -> bool:
        return (
            _scope_matches(self.severities, alert.severity)
            and (alert.source_service is None or _scope_matches(self.services, alert.source_service))
            and _scope_matches(self.alert_types, alert.alert_type)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "severities": [s.value for s in self.severities] if self.severities else None,
            "services": self.services,
            "alert_types": self.alert_types,
        }


@dataclass
class EscalationPolicy:
    """Ordered notification levels for matching alerts."""
    id: str
    name: str
    levels: list[EscalationLevel] = field(default_factory=list)
    description: str = ""
    enabled: bool = True
    applies_to: PolicyScope = field(default_factory=PolicyScope)

    def validate(self) -> None:
        if not self.id:
            raise ConfigurationError("Policy id is required")
        if not self.levels:
            raise ConfigurationError(f"Policy {self.id} has no levels")
        for index, level in enumerate(self.levels):
            if level.level != index:
                raise ConfigurationError(
                    f"Policy {self.id} levels must be numbered 0..{len(self.levels) - 1}"
                )
            if level.delay_minutes < 0:
                raise ConfigurationError(
                    f"Policy {self.id} level {index} has a negative delay"
                )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "applies_to": self.applies_to.to_dict(),
            "levels": [lvl.to_dict() for lvl in self.levels],
        }


@dataclass
class NotificationRecord:
    """One delivery attempt logged against an incident."""
    channel: str
    level: int
    sent_at: datetime
    success: bool
    recipients: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            "level": self.level,
            "sent_at": self.sent_at.isoformat(),
            "success": self.success,
            "recipients": list(self.recipients),
            "error": self.error,
        }


@dataclass
class IncidentContext:
    """Live escalation state for one (alert, policy) pair."""
    incident_id: str
    alert_id: str
    policy_id: str
    created_at: datetime
    escalation_level: int = 0
    next_escalation_at: Optional[datetime] = None
    notifications_sent: list[NotificationRecord] = field(default_factory=list)

    def is_due(self, now: datetime) -> bool:
        return self.next_escalation_at is not None and self.next_escalation_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "incident_id": self.incident_id,
            "alert_id": self.alert_id,
            "policy_id": self.policy_id,
            "escalation_level": self.escalation_level,
            "next_escalation_at": _iso(self.next_escalation_at),
            "created_at": self.created_at.isoformat(),
            "notifications_sent": [n.to_dict() for n in self.notifications_sent],
        }


# =============================================================================
# Reporting
# =============================================================================


@dataclass
class EvaluationResult:
    """Summary of one rule evaluation tick."""
    rules_evaluated: int = 0
    alerts_created: list[str] = field(default_factory=list)
    alerts_resolved: list[str] = field(default_factory=list)
    failed_rules: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rules_evaluated": self.rules_evaluated,
            "alerts_created": list(self.alerts_created),
            "alerts_resolved": list(self.alerts_resolved),
            "failed_rules": list(self.failed_rules),
        }


@dataclass
class EscalationResult:
    """Summary of one escalation tick."""
    incidents_checked: int = 0
    levels_executed: int = 0
    incidents_dropped: list[str] = field(default_factory=list)
    failed_incidents: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "incidents_checked": self.incidents_checked,
            "levels_executed": self.levels_executed,
            "incidents_dropped": list(self.incidents_dropped),
            "failed_incidents": list(self.failed_incidents),
        }


@dataclass
class AlertStatistics:
    """Aggregate counts over a lookback range."""
    time_range: TimeRange
    total_alerts: int = 0
    by_severity: dict[str, int] = field(
        default_factory=lambda: {s.value: 0 for s in AlertSeverity}
    )
    by_status: dict[str, int] = field(default_factory=dict)
    resolution_time_avg_minutes: float = 0.0
    escalations_triggered: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "time_range": self.time_range.value,
            "total_alerts": self.total_alerts,
            "by_severity": dict(self.by_severity),
            "by_status": dict(self.by_status),
            "resolution_time_avg_minutes": self.resolution_time_avg_minutes,
            "escalations_triggered": self.escalations_triggered,
        }


@dataclass
class EngineStatus:
    """Point-in-time view of the engine."""
    is_running: bool
    active_rules: int
    active_policies: int
    active_incidents: int
    total_alerts_today: int
    last_evaluation_at: Optional[datetime] = None
    last_escalation_at: Optional[datetime] = None
    evaluation_ticks: int = 0
    escalation_ticks: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "active_rules": self.active_rules,
            "active_policies": self.active_policies,
            "active_incidents": self.active_incidents,
            "total_alerts_today": self.total_alerts_today,
            "last_evaluation_at": _iso(self.last_evaluation_at),
            "last_escalation_at": _iso(self.last_escalation_at),
            "evaluation_ticks": self.evaluation_ticks,
            "escalation_ticks": self.escalation_ticks,
        }
