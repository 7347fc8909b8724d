"""Condition evaluation over trailing metric windows.

A rule fires only when every sample in the trailing ``duration_minutes``
sub-window breaches its threshold. Missing data never fires.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Sequence

from src.alerting.config import OPERATOR_PHRASES, ConditionOperator
from src.alerting.models import AlertCondition, AlertRule, MetricSample

logger = logging.getLogger(__name__)


def matches(value: float, condition: AlertCondition) -> bool:
    """Check a single value against the condition's operator.

    Args:
        value: Metric reading.
        condition: Condition holding the operator and thresholds.

    Returns:
        True if the value breaches the condition.
    """
    op = condition.operator
    low = condition.threshold
    high = condition.threshold_max

    if op == ConditionOperator.GREATER_THAN:
        return value > low
    if op == ConditionOperator.LESS_THAN:
        return value < low
    if op == ConditionOperator.EQUALS:
        return value == low
    if op == ConditionOperator.NOT_EQUALS:
        return value != low
    if high is None:
        # Range operator without an upper bound never holds
        return False
    if op == ConditionOperator.BETWEEN:
        return low <= value <= high
    if op == ConditionOperator.OUTSIDE:
        return not (low <= value <= high)
    return False


def duration_window(
    samples: Sequence[MetricSample], condition: AlertCondition, now: datetime
) -> list[MetricSample]:
    """Samples falling inside the trailing duration sub-window."""
    cutoff = now - timedelta(minutes=condition.duration_minutes)
    return [s for s in samples if s.timestamp >= cutoff]


def evaluate(
    samples: Sequence[MetricSample], condition: AlertCondition, now: datetime
) -> bool:
    """Decide whether a condition holds over a window of samples.

    Args:
        samples: Samples for the rule's scope within the evaluation window.
        condition: Condition to evaluate.
        now: Evaluation time.

    Returns:
        True only if the duration sub-window is non-empty and every
        sample in it satisfies the operator.
    """
    recent = duration_window(samples, condition, now)
    if not recent:
        return False
    return all(matches(s.metric_value, condition) for s in recent)


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def describe(rule: AlertRule, sample: MetricSample) -> str:
    """Render the human-readable description of a breach.

    Example:
        "dashboard_api: response_time exceeded threshold of 2000ms.
        Current value: 2100ms"
    """
    condition = rule.condition
    unit = sample.unit or ""
    service_part = f"{rule.service_name}: " if rule.service_name else ""
    metric_part = f"{rule.metric_type} " if rule.metric_type else ""
    phrase = OPERATOR_PHRASES.get(condition.operator, "condition met for")

    threshold_part = f"{_fmt(condition.threshold)}{unit}"
    if condition.threshold_max is not None and condition.operator in (
        ConditionOperator.BETWEEN,
        ConditionOperator.OUTSIDE,
    ):
        threshold_part = f"{threshold_part} and {_fmt(condition.threshold_max)}{unit}"

    return (
        f"{service_part}{metric_part}{phrase} {threshold_part}. "
        f"Current value: {_fmt(sample.metric_value)}{unit}"
    )


def build_trend(samples: Sequence[MetricSample], count: int = 10) -> list[dict[str, Any]]:
    """Newest ``count`` samples as timestamp/value pairs."""
    return [
        {"timestamp": s.timestamp.isoformat(), "value": s.metric_value}
        for s in samples[:count]
    ]
