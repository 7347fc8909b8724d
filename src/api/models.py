"""API Request/Response Models.

Pydantic schemas for the alerting endpoints. Request models convert to
the engine's dataclasses through ``to_domain()``.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.alerting.config import AlertSeverity, ConditionOperator
from src.alerting.models import (
    AlertCondition,
    AlertRule,
    ChannelFilter,
    EscalationLevel,
    EscalationPolicy,
    LevelConditions,
    MetricSample,
    NotificationChannel,
    PolicyScope,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ─── Common ──────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "1.0.0"
    components: dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utc_now)


# ─── Alerts ──────────────────────────────────────────────────────────────


class AlertResponse(BaseModel):
    """A single alert record."""

    id: str
    alert_type: str
    severity: str
    title: str
    description: str = ""
    source_service: Optional[str] = None
    source_metric_id: Optional[str] = None
    status: str
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    acknowledgement_notes: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    auto_resolve: bool = False
    trigger_condition: dict[str, Any] = Field(default_factory=dict)
    alert_data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class AlertListResponse(BaseModel):
    """Alerts matching a query, newest first."""

    alerts: list[AlertResponse]
    count: int = 0


class TransitionRequest(BaseModel):
    """Acknowledge, resolve or dismiss an alert."""

    user: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = None


class BulkActionRequest(BaseModel):
    """Apply one lifecycle action to many alerts."""

    alert_ids: list[str] = Field(..., min_length=1)
    user: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = None


class BulkActionResult(BaseModel):
    alert_id: str
    success: bool
    error: Optional[str] = None


class BulkActionResponse(BaseModel):
    """Per-alert outcomes of a bulk action."""

    results: list[BulkActionResult]
    succeeded: int = 0
    failed: int = 0


class ManualAlertRequest(BaseModel):
    """Operator-raised alert."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    severity: AlertSeverity = AlertSeverity.MEDIUM
    service: Optional[str] = None
    alert_type: Optional[str] = None
    alert_data: dict[str, Any] = Field(default_factory=dict)


class StatisticsResponse(BaseModel):
    """Alert counts over a lookback range."""

    time_range: str
    total_alerts: int
    by_severity: dict[str, int]
    by_status: dict[str, int]
    resolution_time_avg_minutes: float
    escalations_triggered: int


class StatusResponse(BaseModel):
    """Engine status snapshot."""

    is_running: bool
    active_rules: int
    active_policies: int
    active_incidents: int
    total_alerts_today: int
    last_evaluation_at: Optional[datetime] = None
    last_escalation_at: Optional[datetime] = None
    evaluation_ticks: int = 0
    escalation_ticks: int = 0


# ─── Metrics ─────────────────────────────────────────────────────────────


class MetricSampleRequest(BaseModel):
    """A pushed health metric sample."""

    service_name: str = Field(..., min_length=1, max_length=100)
    metric_type: str = Field(..., min_length=1, max_length=50)
    metric_value: float
    unit: str = ""
    timestamp: Optional[datetime] = None

    def to_domain(self, now: datetime) -> MetricSample:
        timestamp = self.timestamp or now
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return MetricSample(
            service_name=self.service_name,
            metric_type=self.metric_type,
            metric_value=self.metric_value,
            unit=self.unit,
            timestamp=timestamp,
        )


# ─── Rules ───────────────────────────────────────────────────────────────


class ConditionModel(BaseModel):
    operator: ConditionOperator
    threshold: float
    threshold_max: Optional[float] = None
    duration_minutes: int = Field(default=1, ge=1)
    evaluation_window_minutes: int = Field(default=5, ge=1)

    def to_domain(self) -> AlertCondition:
        return AlertCondition(
            operator=self.operator,
            threshold=self.threshold,
            threshold_max=self.threshold_max,
            duration_minutes=self.duration_minutes,
            evaluation_window_minutes=self.evaluation_window_minutes,
        )


class RuleCreateRequest(BaseModel):
    """Register or replace an alert rule."""

    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    service_name: Optional[str] = None
    metric_type: Optional[str] = None
    condition: ConditionModel
    severity: AlertSeverity
    enabled: bool = True

    def to_domain(self) -> AlertRule:
        return AlertRule(
            id=self.id,
            name=self.name,
            description=self.description,
            service_name=self.service_name,
            metric_type=self.metric_type,
            condition=self.condition.to_domain(),
            severity=self.severity,
            enabled=self.enabled,
        )


class RuleToggleRequest(BaseModel):
    enabled: bool


# ─── Escalation Policies ─────────────────────────────────────────────────


class ChannelFilterModel(BaseModel):
    min_severity: Optional[AlertSeverity] = None
    services: Optional[list[str]] = None
    alert_types: Optional[list[str]] = None

    def to_domain(self) -> ChannelFilter:
        return ChannelFilter(
            min_severity=self.min_severity,
            services=self.services,
            alert_types=self.alert_types,
        )


class ChannelModel(BaseModel):
    """Notification channel. Unknown types are accepted and fail at send time."""

    type: str
    config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    filters: Optional[ChannelFilterModel] = None

    def to_domain(self) -> NotificationChannel:
        return NotificationChannel(
            type=self.type,
            config=dict(self.config),
            enabled=self.enabled,
            filters=self.filters.to_domain() if self.filters else None,
        )


class LevelConditionsModel(BaseModel):
    if_not_acknowledged: bool = False
    if_not_resolved: bool = False
    if_severity_at_least: Optional[AlertSeverity] = None

    def to_domain(self) -> LevelConditions:
        return LevelConditions(
            if_not_acknowledged=self.if_not_acknowledged,
            if_not_resolved=self.if_not_resolved,
            if_severity_at_least=self.if_severity_at_least,
        )


class LevelModel(BaseModel):
    level: int = Field(..., ge=0)
    delay_minutes: int = Field(default=0, ge=0)
    channels: list[ChannelModel] = Field(default_factory=list)
    recipients: list[str] = Field(default_factory=list)
    conditions: Optional[LevelConditionsModel] = None

    def to_domain(self) -> EscalationLevel:
        return EscalationLevel(
            level=self.level,
            delay_minutes=self.delay_minutes,
            channels=[c.to_domain() for c in self.channels],
            recipients=list(self.recipients),
            conditions=self.conditions.to_domain() if self.conditions else None,
        )


class PolicyScopeModel(BaseModel):
    severities: Optional[list[AlertSeverity]] = None
    services: Optional[list[str]] = None
    alert_types: Optional[list[str]] = None

    def to_domain(self) -> PolicyScope:
        return PolicyScope(
            severities=self.severities,
            services=self.services,
            alert_types=self.alert_types,
        )


class PolicyCreateRequest(BaseModel):
    """Register or replace an escalation policy."""

    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    enabled: bool = True
    applies_to: PolicyScopeModel = Field(default_factory=PolicyScopeModel)
    levels: list[LevelModel] = Field(..., min_length=1)

    def to_domain(self) -> EscalationPolicy:
        return EscalationPolicy(
            id=self.id,
            name=self.name,
            description=self.description,
            enabled=self.enabled,
            applies_to=self.applies_to.to_domain(),
            levels=[lvl.to_domain() for lvl in self.levels],
        )


class EscalationRequest(BaseModel):
    """Manual escalation. Without ``level`` each incident advances one step."""

    level: Optional[int] = Field(default=None, ge=0)


class EscalationResponse(BaseModel):
    alert_id: str
    incidents: list[dict[str, Any]]


# ─── Channels ────────────────────────────────────────────────────────────


class ChannelTestRequest(BaseModel):
    """Send a synthetic alert through one channel."""

    channel: ChannelModel
    recipients: Optional[list[str]] = None


class ChannelTestResponse(BaseModel):
    channel: str
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None
