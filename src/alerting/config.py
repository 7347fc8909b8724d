"""Alerting & Escalation Engine - Configuration.

Enums, constants, and configuration dataclasses for the alerting engine.
"""

import enum
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class AlertSeverity(enum.Enum):
    """Alert severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(enum.Enum):
    """Alert lifecycle status."""
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ConditionOperator(enum.Enum):
    """Comparison operators for alert conditions."""
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    BETWEEN = "between"
    OUTSIDE = "outside"


class ChannelType(enum.Enum):
    """Notification delivery channel types."""
    EMAIL = "email"
    SLACK = "slack"
    WEBHOOK = "webhook"
    SMS = "sms"
    PAGERDUTY = "pagerduty"
    IN_APP = "in_app"


class TimeRange(enum.Enum):
    """Lookback ranges for alert statistics."""
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


# Severity ordering for comparison
SEVERITY_ORDER: dict[AlertSeverity, int] = {
    AlertSeverity.LOW: 0,
    AlertSeverity.MEDIUM: 1,
    AlertSeverity.HIGH: 2,
    AlertSeverity.CRITICAL: 3,
}

# Statuses from which no further lifecycle transition is possible
TERMINAL_STATUSES = frozenset({AlertStatus.RESOLVED, AlertStatus.DISMISSED})

# Continuously sampled performance metrics; alerts on these auto-resolve
AUTO_RESOLVE_METRIC_TYPES = frozenset({
    "response_time",
    "cpu_usage",
    "memory_usage",
    "error_rate",
})

TIME_RANGE_SECONDS: dict[TimeRange, int] = {
    TimeRange.HOUR: 60 * 60,
    TimeRange.DAY: 24 * 60 * 60,
    TimeRange.WEEK: 7 * 24 * 60 * 60,
    TimeRange.MONTH: 30 * 24 * 60 * 60,
}

OPERATOR_PHRASES: dict[ConditionOperator, str] = {
    ConditionOperator.GREATER_THAN: "exceeded threshold of",
    ConditionOperator.LESS_THAN: "dropped below threshold of",
    ConditionOperator.EQUALS: "equals",
    ConditionOperator.NOT_EQUALS: "does not equal",
    ConditionOperator.BETWEEN: "is between",
    ConditionOperator.OUTSIDE: "is outside range",
}

SYSTEM_ACTOR = "system"


def severity_at_least(current: AlertSeverity, required: AlertSeverity) -> bool:
    """Check whether ``current`` is ordinally at or above ``required``."""
    return SEVERITY_ORDER[current] >= SEVERITY_ORDER[required]


@dataclass
class AlertingConfig:
    """Top-level alerting engine configuration."""
    evaluation_interval_seconds: float = 60.0
    escalation_interval_seconds: float = 30.0
    trend_sample_count: int = 10
    http_timeout_seconds: float = 10.0
    load_default_rules: bool = True
    load_default_policies: bool = True


DEFAULT_ALERTING_CONFIG = AlertingConfig()


# Built-in rule definitions, keyed by rule id
DEFAULT_RULE_DEFINITIONS: dict[str, dict] = {
    "high_response_time": {
        "name": "High Response Time",
        "description": "Alert when API response time exceeds threshold",
        "service_name": "dashboard_api",
        "metric_type": "response_time",
        "operator": ConditionOperator.GREATER_THAN,
        "threshold": 2000.0,
        "duration_minutes": 2,
        "evaluation_window_minutes": 5,
        "severity": AlertSeverity.HIGH,
    },
    "critical_response_time": {
        "name": "Critical Response Time",
        "description": "Alert when API response time is critically high",
        "service_name": "dashboard_api",
        "metric_type": "response_time",
        "operator": ConditionOperator.GREATER_THAN,
        "threshold": 5000.0,
        "duration_minutes": 1,
        "evaluation_window_minutes": 3,
        "severity": AlertSeverity.CRITICAL,
    },
    "high_cpu_usage": {
        "name": "High CPU Usage",
        "description": "Alert when CPU usage is consistently high",
        "metric_type": "cpu_usage",
        "operator": ConditionOperator.GREATER_THAN,
        "threshold": 85.0,
        "duration_minutes": 5,
        "evaluation_window_minutes": 10,
        "severity": AlertSeverity.MEDIUM,
    },
    "critical_memory_usage": {
        "name": "Critical Memory Usage",
        "description": "Alert when memory usage reaches critical levels",
        "metric_type": "memory_usage",
        "operator": ConditionOperator.GREATER_THAN,
        "threshold": 90.0,
        "duration_minutes": 2,
        "evaluation_window_minutes": 5,
        "severity": AlertSeverity.CRITICAL,
    },
    "service_downtime": {
        "name": "Service Downtime",
        "description": "Alert when service uptime drops below threshold",
        "metric_type": "uptime",
        "operator": ConditionOperator.LESS_THAN,
        "threshold": 99.0,
        "duration_minutes": 1,
        "evaluation_window_minutes": 3,
        "severity": AlertSeverity.CRITICAL,
    },
    "high_error_rate": {
        "name": "High Error Rate",
        "description": "Alert when error rate exceeds acceptable levels",
        "metric_type": "error_rate",
        "operator": ConditionOperator.GREATER_THAN,
        "threshold": 5.0,
        "duration_minutes": 3,
        "evaluation_window_minutes": 10,
        "severity": AlertSeverity.HIGH,
    },
}


# Built-in escalation policies, keyed by policy id
DEFAULT_POLICY_DEFINITIONS: dict[str, dict] = {
    "critical_escalation": {
        "name": "Critical Incident Escalation",
        "description": "Escalation policy for critical severity alerts",
        "severities": [AlertSeverity.CRITICAL],
        "levels": [
            {
                "delay_minutes": 0,
                "channels": [
                    (ChannelType.IN_APP, {}),
                    (ChannelType.EMAIL, {"template": "critical_alert"}),
                ],
                "recipients": ["on-call-engineer@company.com"],
                "conditions": {"if_severity_at_least": AlertSeverity.CRITICAL},
            },
            {
                "delay_minutes": 15,
                "channels": [
                    (ChannelType.SLACK, {"channel": "#critical-alerts", "mention": "@channel"}),
                    (ChannelType.PAGERDUTY, {"service_key": "critical-incidents"}),
                ],
                "recipients": ["team-lead@company.com", "ops-manager@company.com"],
                "conditions": {"if_not_acknowledged": True},
            },
            {
                "delay_minutes": 30,
                "channels": [
                    (ChannelType.EMAIL, {"template": "executive_alert"}),
                ],
                "recipients": ["cto@company.com", "vp-engineering@company.com"],
                "conditions": {"if_not_resolved": True},
            },
        ],
    },
    "standard_escalation": {
        "name": "Standard Alert Escalation",
        "description": "Escalation policy for high and medium severity alerts",
        "severities": [AlertSeverity.HIGH, AlertSeverity.MEDIUM],
        "levels": [
            {
                "delay_minutes": 0,
                "channels": [
                    (ChannelType.IN_APP, {}),
                    (ChannelType.EMAIL, {"template": "standard_alert"}),
                ],
                "recipients": ["team@company.com"],
            },
            {
                "delay_minutes": 60,
                "channels": [
                    (ChannelType.SLACK, {"channel": "#monitoring-alerts"}),
                ],
                "recipients": ["team-lead@company.com"],
                "conditions": {"if_not_acknowledged": True},
            },
        ],
    },
}


def build_default_rules() -> list:
    """Materialize ``DEFAULT_RULE_DEFINITIONS`` as ``AlertRule`` objects."""
    from src.alerting.models import AlertCondition, AlertRule

    rules = []
    for rule_id, definition in DEFAULT_RULE_DEFINITIONS.items():
        rules.append(AlertRule(
            id=rule_id,
            name=definition["name"],
            description=definition["description"],
            service_name=definition.get("service_name"),
            metric_type=definition.get("metric_type"),
            condition=AlertCondition(
                operator=definition["operator"],
                threshold=definition["threshold"],
                duration_minutes=definition["duration_minutes"],
                evaluation_window_minutes=definition["evaluation_window_minutes"],
            ),
            severity=definition["severity"],
        ))
    return rules


def build_default_policies() -> list:
    """Materialize ``DEFAULT_POLICY_DEFINITIONS`` as ``EscalationPolicy`` objects."""
    from src.alerting.models import (
        EscalationLevel,
        EscalationPolicy,
        LevelConditions,
        NotificationChannel,
        PolicyScope,
    )

    policies = []
    for policy_id, definition in DEFAULT_POLICY_DEFINITIONS.items():
        levels = []
        for index, level_def in enumerate(definition["levels"]):
            conditions = level_def.get("conditions")
            levels.append(EscalationLevel(
                level=index,
                delay_minutes=level_def["delay_minutes"],
                channels=[
                    NotificationChannel(type=ctype, config=dict(cfg))
                    for ctype, cfg in level_def["channels"]
                ],
                recipients=list(level_def["recipients"]),
                conditions=LevelConditions(**conditions) if conditions else None,
            ))
        policies.append(EscalationPolicy(
            id=policy_id,
            name=definition["name"],
            description=definition["description"],
            levels=levels,
            applies_to=PolicyScope(severities=list(definition["severities"])),
        ))
    return policies
