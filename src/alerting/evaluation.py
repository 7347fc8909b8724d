"""Rule evaluation loop.

Each tick walks a snapshot of the enabled rules, pulls the samples in
every rule's evaluation window, opens an alert when the condition holds
and no active alert exists for the rule, and auto-resolves eligible
alerts once the condition stops holding. A failing rule is logged and
skipped; it never aborts the tick.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Sequence

from src.alerting import conditions, lifecycle
from src.alerting.clock import Clock
from src.alerting.exceptions import (
    DuplicateActiveAlertError,
    FetchError,
    PersistenceError,
)
from src.alerting.models import AlertRule, EvaluationResult, MetricSample, SystemAlert
from src.alerting.registry import RuleRegistry
from src.alerting.store import AlertStore, MetricSource
from src.logging_config.context import LogContext

logger = logging.getLogger(__name__)

AlertCreatedHook = Callable[[SystemAlert], Awaitable[None]]
AlertClosedHook = Callable[[SystemAlert], None]


@dataclass
class RuleOutcome:
    """What a single rule evaluation changed."""
    created: Optional[str] = None
    resolved: list[str] = field(default_factory=list)


def build_alert(
    rule: AlertRule,
    samples: Sequence[MetricSample],
    now: datetime,
    trend_sample_count: int = 10,
) -> SystemAlert:
    """Create the alert record for a breached rule.

    Args:
        rule: Breached rule.
        samples: Window samples, newest first.
        now: Evaluation time.
        trend_sample_count: How many recent samples to keep as trend.
    """
    latest = samples[0]
    return SystemAlert(
        alert_type=rule.id,
        severity=rule.severity,
        title=rule.name,
        description=conditions.describe(rule, latest),
        source_service=rule.service_name or latest.service_name,
        source_metric_id=latest.id,
        auto_resolve=rule.auto_resolve,
        trigger_condition={
            "rule_id": rule.id,
            "condition": rule.condition.to_dict(),
            "trigger_value": latest.metric_value,
            "evaluation_time": now.isoformat(),
        },
        alert_data={
            "metric_type": rule.metric_type or latest.metric_type,
            "current_value": latest.metric_value,
            "threshold": rule.condition.threshold,
            "unit": latest.unit,
            "trend_data": conditions.build_trend(samples, trend_sample_count),
        },
        created_at=now,
        updated_at=now,
    )


class RuleEvaluator:
    """Evaluates rules against the metric source and maintains alerts.

    Evaluation of any one rule is serialized by a per-rule lock, so
    overlapping ticks in one process cannot open duplicate alerts.
    """

    def __init__(
        self,
        rules: RuleRegistry,
        source: MetricSource,
        store: AlertStore,
        clock: Clock,
        on_alert_created: Optional[AlertCreatedHook] = None,
        on_alert_closed: Optional[AlertClosedHook] = None,
        trend_sample_count: int = 10,
    ):
        self.rules = rules
        self.source = source
        self.store = store
        self.clock = clock
        self.trend_sample_count = trend_sample_count
        self._on_alert_created = on_alert_created
        self._on_alert_closed = on_alert_closed
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def forget(self, rule_id: str) -> None:
        """Release per-rule state for a rule that is no longer registered."""
        self._locks.pop(rule_id, None)

    async def evaluate_all(self) -> EvaluationResult:
        """Run one evaluation pass over every enabled rule."""
        result = EvaluationResult()
        for rule in self.rules.snapshot():
            result.rules_evaluated += 1
            with LogContext(rule_id=rule.id):
                try:
                    outcome = await self.evaluate_rule(rule)
                except FetchError as e:
                    logger.warning("Skipping rule %s, metrics unavailable: %s", rule.id, e)
                    result.failed_rules.append(rule.id)
                    continue
                except PersistenceError as e:
                    logger.error("Skipping rule %s, alert store error: %s", rule.id, e)
                    result.failed_rules.append(rule.id)
                    continue
                except Exception:
                    logger.exception("Unexpected error evaluating rule %s", rule.id)
                    result.failed_rules.append(rule.id)
                    continue

            if outcome.created:
                result.alerts_created.append(outcome.created)
            result.alerts_resolved.extend(outcome.resolved)

        if result.alerts_created or result.alerts_resolved or result.failed_rules:
            logger.info(
                "Evaluated %d rules: %d created, %d resolved, %d failed",
                result.rules_evaluated,
                len(result.alerts_created),
                len(result.alerts_resolved),
                len(result.failed_rules),
            )
        return result

    async def evaluate_rule(self, rule: AlertRule) -> RuleOutcome:
        """Evaluate one rule and apply the resulting alert changes.

        Raises:
            FetchError: If samples could not be read.
            PersistenceError: If the alert store failed.
        """
        async with self._locks[rule.id]:
            now = self.clock.now()
            samples = await self._fetch(rule, now)
            if not samples:
                logger.debug("No samples for rule %s", rule.id)
                return RuleOutcome()

            if conditions.evaluate(samples, rule.condition, now):
                created = await self._open_alert(rule, samples, now)
                return RuleOutcome(created=created.id if created else None)
            return RuleOutcome(resolved=await self._auto_resolve(rule, now))

    async def _fetch(self, rule: AlertRule, now: datetime) -> list[MetricSample]:
        since = now - timedelta(minutes=rule.condition.evaluation_window_minutes)
        try:
            return await self.source.fetch_samples(rule.metric_type, rule.service_name, since)
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(f"Fetching samples for {rule.id} failed: {e}") from e

    async def _open_alert(
        self, rule: AlertRule, samples: Sequence[MetricSample], now: datetime
    ) -> Optional[SystemAlert]:
        if await self.store.find_active_by_type(rule.id) is not None:
            return None

        alert = build_alert(rule, samples, now, self.trend_sample_count)
        try:
            created = await self.store.insert(alert)
        except DuplicateActiveAlertError:
            logger.info("Rule %s already has an active alert, skipping", rule.id)
            return None

        with LogContext(alert_id=created.id):
            logger.info("Alert created: %s (%s)", created.title, created.severity.value)
            if self._on_alert_created is not None:
                await self._on_alert_created(created)
        return created

    async def _auto_resolve(self, rule: AlertRule, now: datetime) -> list[str]:
        resolved = []
        for alert in await self.store.list_active_by_type(rule.id):
            if not alert.auto_resolve:
                continue
            lifecycle.auto_resolve(alert, now)
            await self.store.update(alert)
            resolved.append(alert.id)
            with LogContext(alert_id=alert.id):
                logger.info("Alert auto-resolved: %s", alert.title)
            if self._on_alert_closed is not None:
                self._on_alert_closed(alert)
        return resolved
