"""Alerting engine.

Composes rule evaluation, the alert lifecycle, escalation, and
notification dispatch behind one public API, and owns the two periodic
loops (rule evaluation and escalation).
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from src.alerting import lifecycle
from src.alerting.channels.base import DeliveryResult
from src.alerting.channels.dispatcher import NotificationDispatcher
from src.alerting.clock import Clock, SystemClock
from src.alerting.config import (
    DEFAULT_ALERTING_CONFIG,
    TIME_RANGE_SECONDS,
    AlertingConfig,
    AlertSeverity,
    AlertStatus,
    TimeRange,
    build_default_policies,
    build_default_rules,
)
from src.alerting.escalation import EscalationManager
from src.alerting.evaluation import RuleEvaluator
from src.alerting.exceptions import (
    AlertNotFoundError,
    ConfigurationError,
    InvalidTransitionError,
)
from src.alerting.models import (
    AlertRule,
    AlertStatistics,
    EngineStatus,
    EscalationPolicy,
    EscalationResult,
    EvaluationResult,
    IncidentContext,
    NotificationChannel,
    SystemAlert,
)
from src.alerting.registry import PolicyRegistry, RuleRegistry
from src.alerting.store import AlertStore, MetricSource
from src.logging_config.context import LogContext
from src.logging_config.performance import log_performance

logger = logging.getLogger(__name__)

MANUAL_ALERT_TYPE = "manual_alert"


@dataclass
class BulkOutcome:
    """Per-alert result of a bulk lifecycle action."""
    alert_id: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"alert_id": self.alert_id, "success": self.success, "error": self.error}


class AlertingEngine:
    """Alerting & escalation engine.

    Example:
        engine = AlertingEngine(metric_source, alert_store, dispatcher)
        await engine.start(evaluation_interval_s=60, escalation_interval_s=30)
        ...
        await engine.acknowledge_alert(alert_id, "oncall@company.com")
        await engine.stop()
    """

    def __init__(
        self,
        metric_source: MetricSource,
        store: AlertStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Optional[Clock] = None,
        config: Optional[AlertingConfig] = None,
        rules: Optional[list[AlertRule]] = None,
        policies: Optional[list[EscalationPolicy]] = None,
    ):
        self._config = config or DEFAULT_ALERTING_CONFIG
        self.clock = clock or SystemClock()
        self.store = store
        self.metric_source = metric_source
        self.dispatcher = dispatcher or NotificationDispatcher()

        self.rules = RuleRegistry()
        self.policies = PolicyRegistry()
        if rules is None and self._config.load_default_rules:
            rules = build_default_rules()
        for rule in rules or []:
            self.rules.add(rule)
        if policies is None and self._config.load_default_policies:
            policies = build_default_policies()
        for policy in policies or []:
            self.policies.add(policy)

        self.escalations = EscalationManager(self.policies, store, self.dispatcher, self.clock)
        self.evaluator = RuleEvaluator(
            self.rules,
            metric_source,
            store,
            self.clock,
            on_alert_created=self._on_alert_created,
            on_alert_closed=self._on_alert_closed,
            trend_sample_count=self._config.trend_sample_count,
        )

        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._tick_tasks: set[asyncio.Task] = set()
        self._tick_counter = itertools.count(1)
        self._last_evaluation_at: Optional[datetime] = None
        self._last_escalation_at: Optional[datetime] = None
        self._evaluation_ticks = 0
        self._escalation_ticks = 0

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # Loop control
    # =========================================================================

    async def start(
        self,
        evaluation_interval_s: Optional[float] = None,
        escalation_interval_s: Optional[float] = None,
    ) -> None:
        """Start the evaluation and escalation loops."""
        if self._running:
            logger.warning("Alerting engine already running")
            return

        evaluation_interval = evaluation_interval_s or self._config.evaluation_interval_seconds
        escalation_interval = escalation_interval_s or self._config.escalation_interval_seconds
        self._running = True
        self._tasks = [
            asyncio.create_task(self._schedule_loop(self.evaluate_rules, evaluation_interval)),
            asyncio.create_task(self._schedule_loop(self.process_escalations, escalation_interval)),
        ]
        logger.info(
            "Alerting engine started (evaluation every %ss, escalation every %ss)",
            evaluation_interval, escalation_interval,
        )

    async def stop(self) -> None:
        """Stop the scheduler loops. In-flight ticks run to completion."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
        logger.info("Alerting engine stopped")

    async def _schedule_loop(self, tick_fn: Callable, interval: float) -> None:
        """Launch ``tick_fn`` as its own task every ``interval`` seconds."""
        while self._running:
            try:
                task = asyncio.create_task(self._guarded_tick(tick_fn))
                self._tick_tasks.add(task)
                task.add_done_callback(self._tick_tasks.discard)
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break

    async def _guarded_tick(self, tick_fn: Callable) -> None:
        try:
            await tick_fn()
        except Exception:
            logger.exception("Alerting tick %s failed", tick_fn.__name__)

    # =========================================================================
    # Single ticks
    # =========================================================================

    @log_performance(threshold_ms=5000)
    async def evaluate_rules(self) -> EvaluationResult:
        """Run one rule-evaluation tick."""
        tick = f"evaluation-{next(self._tick_counter)}"
        with LogContext(tick=tick):
            result = await self.evaluator.evaluate_all()
        self._evaluation_ticks += 1
        self._last_evaluation_at = self.clock.now()
        return result

    @log_performance(threshold_ms=5000)
    async def process_escalations(self) -> EscalationResult:
        """Run one escalation tick."""
        tick = f"escalation-{next(self._tick_counter)}"
        with LogContext(tick=tick):
            result = await self.escalations.process_due()
        self._escalation_ticks += 1
        self._last_escalation_at = self.clock.now()
        return result

    async def _on_alert_created(self, alert: SystemAlert) -> None:
        try:
            await self.escalations.seed(alert)
        except Exception:
            logger.exception("Seeding escalation for alert %s failed", alert.id)

    def _on_alert_closed(self, alert: SystemAlert) -> None:
        self.escalations.drop_for_alert(alert.id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def _load(self, alert_id: str) -> SystemAlert:
        alert = await self.store.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert

    async def transition(
        self, alert_id: str, action: str, by: str, notes: Optional[str] = None
    ) -> SystemAlert:
        """Apply a lifecycle action and return the updated alert.

        Raises:
            AlertNotFoundError: If the alert does not exist.
            InvalidTransitionError: If the action is not allowed from the
                alert's current status.
        """
        transitions = {
            "acknowledge": lifecycle.acknowledge,
            "resolve": lifecycle.resolve,
            "dismiss": lifecycle.dismiss,
        }
        if action not in transitions:
            raise ConfigurationError(f"Unknown lifecycle action: {action}")

        with LogContext(alert_id=alert_id):
            alert = await self._load(alert_id)
            transitions[action](alert, by, self.clock.now(), notes)
            alert = await self.store.update(alert)
            self.escalations.drop_for_alert(alert_id)
            logger.info("Alert %s by %s", alert.status.value, by)
        return alert

    async def _transition_or_false(
        self, alert_id: str, action: str, by: str, notes: Optional[str]
    ) -> bool:
        try:
            await self.transition(alert_id, action, by, notes)
        except (AlertNotFoundError, InvalidTransitionError) as e:
            logger.warning("Could not %s alert %s: %s", action, alert_id, e.message)
            return False
        return True

    async def acknowledge_alert(self, alert_id: str, user: str, notes: Optional[str] = None) -> bool:
        return await self._transition_or_false(alert_id, "acknowledge", user, notes)

    async def resolve_alert(self, alert_id: str, user: str, notes: Optional[str] = None) -> bool:
        return await self._transition_or_false(alert_id, "resolve", user, notes)

    async def dismiss_alert(self, alert_id: str, user: str, notes: Optional[str] = None) -> bool:
        return await self._transition_or_false(alert_id, "dismiss", user, notes)

    async def bulk_acknowledge(
        self, alert_ids: list[str], user: str, notes: Optional[str] = None
    ) -> list[BulkOutcome]:
        return await self._bulk(alert_ids, "acknowledge", user, notes)

    async def bulk_resolve(
        self, alert_ids: list[str], user: str, notes: Optional[str] = None
    ) -> list[BulkOutcome]:
        return await self._bulk(alert_ids, "resolve", user, notes)

    async def _bulk(
        self, alert_ids: list[str], action: str, user: str, notes: Optional[str]
    ) -> list[BulkOutcome]:
        outcomes = []
        for alert_id in alert_ids:
            try:
                await self.transition(alert_id, action, user, notes)
                outcomes.append(BulkOutcome(alert_id, True))
            except (AlertNotFoundError, InvalidTransitionError) as e:
                outcomes.append(BulkOutcome(alert_id, False, e.message))
        return outcomes

    async def create_manual_alert(
        self,
        title: str,
        description: str,
        severity: AlertSeverity,
        service: Optional[str] = None,
        alert_type: Optional[str] = None,
        alert_data: Optional[dict[str, Any]] = None,
    ) -> SystemAlert:
        """Open an operator-raised alert and seed its escalation."""
        now = self.clock.now()
        alert = SystemAlert(
            alert_type=alert_type or MANUAL_ALERT_TYPE,
            severity=severity,
            title=title,
            description=description,
            source_service=service,
            auto_resolve=False,
            alert_data=dict(alert_data or {}),
            created_at=now,
            updated_at=now,
        )
        created = await self.store.insert(alert)
        with LogContext(alert_id=created.id):
            logger.info("Manual alert created: %s (%s)", created.title, created.severity.value)
            await self._on_alert_created(created)
        return created

    async def trigger_manual_escalation(
        self, alert_id: str, level: Optional[int] = None
    ) -> list[IncidentContext]:
        """Execute the next (or given) level for every incident of an alert.

        Raises:
            AlertNotFoundError: If the alert does not exist.
        """
        alert = await self._load(alert_id)
        return await self.escalations.trigger(alert, level)

    async def test_notification_channel(
        self, channel: NotificationChannel, recipients: Optional[list[str]] = None
    ) -> DeliveryResult:
        return await self.dispatcher.send_test(channel, recipients)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_alert(self, alert_id: str) -> Optional[SystemAlert]:
        return await self.store.get(alert_id)

    async def get_active_alerts(self) -> list[SystemAlert]:
        return await self.store.list_alerts(status=AlertStatus.ACTIVE)

    async def get_alerts(
        self,
        status: Optional[AlertStatus] = None,
        severity: Optional[AlertSeverity] = None,
        service: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[SystemAlert]:
        return await self.store.list_alerts(
            status=status, severity=severity, service=service, since=since, limit=limit
        )

    async def get_alert_statistics(self, time_range: TimeRange = TimeRange.DAY) -> AlertStatistics:
        """Aggregate alert counts over a lookback range."""
        since = self.clock.now() - timedelta(seconds=TIME_RANGE_SECONDS[time_range])
        alerts = await self.store.list_alerts(since=since)

        stats = AlertStatistics(time_range=time_range, total_alerts=len(alerts))
        resolution_minutes = []
        for alert in alerts:
            stats.by_severity[alert.severity.value] += 1
            stats.by_status[alert.status.value] = stats.by_status.get(alert.status.value, 0) + 1
            if alert.status == AlertStatus.RESOLVED and alert.resolved_at:
                delta = alert.resolved_at - alert.created_at
                resolution_minutes.append(delta.total_seconds() / 60)

        if resolution_minutes:
            stats.resolution_time_avg_minutes = sum(resolution_minutes) / len(resolution_minutes)
        stats.escalations_triggered = self.escalations.active_count
        return stats

    async def get_status(self) -> EngineStatus:
        now = self.clock.now()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        today = await self.store.list_alerts(since=start_of_day)
        return EngineStatus(
            is_running=self._running,
            active_rules=len(self.rules.snapshot()),
            active_policies=len(self.policies.enabled()),
            active_incidents=self.escalations.active_count,
            total_alerts_today=len(today),
            last_evaluation_at=self._last_evaluation_at,
            last_escalation_at=self._last_escalation_at,
            evaluation_ticks=self._evaluation_ticks,
            escalation_ticks=self._escalation_ticks,
        )

    # =========================================================================
    # Configuration
    # =========================================================================

    def add_alert_rule(self, rule: AlertRule) -> None:
        """Register or replace a rule.

        Raises:
            ConfigurationError: If the rule is malformed.
        """
        self.rules.add(rule)

    def remove_alert_rule(self, rule_id: str) -> bool:
        removed = self.rules.remove(rule_id)
        if removed:
            self.evaluator.forget(rule_id)
        return removed

    def toggle_alert_rule(self, rule_id: str, enabled: bool) -> bool:
        return self.rules.toggle(rule_id, enabled)

    def get_alert_rules(self) -> list[AlertRule]:
        return self.rules.all()

    def add_escalation_policy(self, policy: EscalationPolicy) -> None:
        """Register or replace a policy.

        Raises:
            ConfigurationError: If the policy is malformed.
        """
        self.policies.add(policy)

    def remove_escalation_policy(self, policy_id: str) -> bool:
        return self.policies.remove(policy_id)

    def get_escalation_policies(self) -> list[EscalationPolicy]:
        return self.policies.all()
