"""Tests for the alerting engine: evaluation, lifecycle, queries and loops."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from src.alerting.config import (
    AlertSeverity,
    AlertStatus,
    ChannelType,
    ConditionOperator,
    TimeRange,
    build_default_rules,
)
from src.alerting.engine import MANUAL_ALERT_TYPE, AlertingEngine
from src.alerting.exceptions import (
    AlertNotFoundError,
    ConfigurationError,
    InvalidTransitionError,
    PersistenceError,
)
from src.alerting.models import AlertCondition, AlertRule, NotificationChannel
from src.alerting.store import DEFAULT_RETENTION_MINUTES, InMemoryAlertStore, InMemoryMetricSource


class BrokenMetricSource:
    async def fetch_samples(self, metric_type, service_name, since):
        raise ConnectionError("metrics database unreachable")


class FailingInsertStore(InMemoryAlertStore):
    async def insert(self, alert):
        raise PersistenceError("disk full")


# ── Rule evaluation ──────────────────────────────────────────────────


class TestRuleEvaluation:
    @pytest.mark.asyncio
    async def test_breach_creates_alert(self, engine, series, notifiers):
        series("dashboard_api", "response_time", [2100.0] * 9, unit="ms")

        result = await engine.evaluate_rules()

        assert result.rules_evaluated == 6
        assert len(result.alerts_created) == 1
        alert = await engine.get_alert(result.alerts_created[0])
        assert alert.alert_type == "high_response_time"
        assert alert.severity == AlertSeverity.HIGH
        assert alert.status == AlertStatus.ACTIVE
        assert alert.source_service == "dashboard_api"
        assert alert.auto_resolve is True
        assert alert.description == (
            "dashboard_api: response_time exceeded threshold of 2000ms. Current value: 2100ms"
        )
        assert alert.trigger_condition["rule_id"] == "high_response_time"
        assert alert.trigger_condition["trigger_value"] == 2100.0
        assert alert.alert_data["threshold"] == 2000.0
        assert len(alert.alert_data["trend_data"]) == 9

        # standard_escalation level 0: in-app + email to the team
        assert notifiers[ChannelType.IN_APP].calls[0]["alert_id"] == alert.id
        email = notifiers[ChannelType.EMAIL].calls[0]
        assert email["recipients"] == ["team@company.com"]
        assert email["config"]["template"] == "standard_alert"

    @pytest.mark.asyncio
    async def test_no_duplicate_while_active(self, engine, series, alert_store):
        series("dashboard_api", "response_time", [2100.0] * 9, unit="ms")

        first = await engine.evaluate_rules()
        second = await engine.evaluate_rules()

        assert len(first.alerts_created) == 1
        assert second.alerts_created == []
        assert len(alert_store) == 1

    @pytest.mark.asyncio
    async def test_concurrent_ticks_open_one_alert(self, engine, series, alert_store):
        series("dashboard_api", "response_time", [2100.0] * 9, unit="ms")

        await asyncio.gather(engine.evaluate_rules(), engine.evaluate_rules())

        active = await alert_store.list_active_by_type("high_response_time")
        assert len(active) == 1

    @pytest.mark.asyncio
    async def test_short_breach_does_not_fire(self, engine, series):
        series("dashboard_api", "response_time", [1500.0, 1500.0, 2100.0, 2100.0], unit="ms")

        result = await engine.evaluate_rules()

        assert result.alerts_created == []

    @pytest.mark.asyncio
    async def test_auto_resolve_when_condition_clears(self, engine, series, clock):
        series("dashboard_api", "response_time", [2100.0] * 9, unit="ms")
        created = (await engine.evaluate_rules()).alerts_created[0]
        assert engine.escalations.incidents_for(created)

        clock.advance(minutes=1)
        series("dashboard_api", "response_time", [1500.0], unit="ms")
        result = await engine.evaluate_rules()

        assert result.alerts_resolved == [created]
        alert = await engine.get_alert(created)
        assert alert.status == AlertStatus.RESOLVED
        assert alert.resolved_by == "system"
        assert alert.resolution_notes == "Condition no longer met"
        assert engine.escalations.incidents_for(created) == []

    @pytest.mark.asyncio
    async def test_sustained_breach_then_recovery(self, engine, series, clock):
        series("dashboard_api", "response_time", [2100.0, 2200.0, 2050.0], unit="ms")
        created = (await engine.evaluate_rules()).alerts_created
        assert len(created) == 1
        alert = await engine.get_alert(created[0])
        assert alert.alert_type == "high_response_time"
        assert alert.severity == AlertSeverity.HIGH

        clock.advance(minutes=1)
        series("dashboard_api", "response_time", [1900.0], unit="ms")
        result = await engine.evaluate_rules()

        assert result.alerts_resolved == created
        assert (await engine.get_alert(created[0])).status == AlertStatus.RESOLVED

    @pytest.mark.asyncio
    async def test_new_alert_after_resolution(self, engine, series, clock):
        series("dashboard_api", "response_time", [2100.0] * 9, unit="ms")
        first = (await engine.evaluate_rules()).alerts_created[0]
        clock.advance(minutes=1)
        series("dashboard_api", "response_time", [1500.0], unit="ms")
        await engine.evaluate_rules()

        clock.advance(minutes=5)
        series("dashboard_api", "response_time", [2600.0] * 6, unit="ms")
        result = await engine.evaluate_rules()

        assert len(result.alerts_created) == 1
        assert result.alerts_created[0] != first

    @pytest.mark.asyncio
    async def test_non_auto_resolve_alert_stays_active(self, engine, series, clock):
        series("web", "uptime", [97.0, 97.0, 97.0], unit="%")
        created = (await engine.evaluate_rules()).alerts_created[0]

        clock.advance(minutes=2)
        series("web", "uptime", [100.0, 100.0], unit="%")
        result = await engine.evaluate_rules()

        assert result.alerts_resolved == []
        alert = await engine.get_alert(created)
        assert alert.status == AlertStatus.ACTIVE
        assert alert.auto_resolve is False

    @pytest.mark.asyncio
    async def test_disabled_rule_is_skipped(self, engine, series):
        engine.toggle_alert_rule("high_response_time", False)
        series("dashboard_api", "response_time", [2100.0] * 9, unit="ms")

        result = await engine.evaluate_rules()

        assert result.rules_evaluated == 5
        assert result.alerts_created == []

    @pytest.mark.asyncio
    async def test_fetch_failure_skips_rules(self, alert_store, dispatcher, clock):
        engine = AlertingEngine(BrokenMetricSource(), alert_store, dispatcher, clock)

        result = await engine.evaluate_rules()

        assert result.rules_evaluated == 6
        assert len(result.failed_rules) == 6
        assert len(alert_store) == 0

    @pytest.mark.asyncio
    async def test_persistence_failure_skips_rule(self, metric_source, dispatcher, clock, series):
        engine = AlertingEngine(metric_source, FailingInsertStore(), dispatcher, clock)
        series("dashboard_api", "response_time", [2100.0] * 9, unit="ms")

        result = await engine.evaluate_rules()

        assert result.failed_rules == ["high_response_time"]
        assert result.alerts_created == []


# ── Lifecycle via the engine ─────────────────────────────────────────


class TestEngineLifecycle:
    @pytest.mark.asyncio
    async def test_acknowledge_and_resolve(self, engine, clock):
        alert = await engine.create_manual_alert("Disk full", "db-1 at 99%", AlertSeverity.HIGH)
        clock.advance(minutes=3)

        assert await engine.acknowledge_alert(alert.id, "oncall@company.com", "on it")
        acked = await engine.get_alert(alert.id)
        assert acked.status == AlertStatus.ACKNOWLEDGED
        assert acked.acknowledged_at == clock.now()

        assert await engine.resolve_alert(alert.id, "oncall@company.com", "cleaned up")
        resolved = await engine.get_alert(alert.id)
        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.resolution_notes == "cleaned up"

    @pytest.mark.asyncio
    async def test_acknowledge_drops_incidents(self, engine):
        alert = await engine.create_manual_alert("Disk full", "", AlertSeverity.HIGH)
        assert engine.escalations.incidents_for(alert.id)

        await engine.acknowledge_alert(alert.id, "oncall")

        assert engine.escalations.incidents_for(alert.id) == []

    @pytest.mark.asyncio
    async def test_invalid_actions_return_false(self, engine):
        alert = await engine.create_manual_alert("Disk full", "", AlertSeverity.LOW)
        assert await engine.resolve_alert(alert.id, "a")
        assert await engine.resolve_alert(alert.id, "b") is False
        assert await engine.dismiss_alert(alert.id, "b") is False
        assert await engine.acknowledge_alert("missing", "a") is False

    @pytest.mark.asyncio
    async def test_transition_raises_typed_errors(self, engine):
        alert = await engine.create_manual_alert("Disk full", "", AlertSeverity.LOW)
        await engine.dismiss_alert(alert.id, "a")

        with pytest.raises(InvalidTransitionError):
            await engine.transition(alert.id, "acknowledge", "b")
        with pytest.raises(AlertNotFoundError):
            await engine.transition("missing", "resolve", "b")
        with pytest.raises(ConfigurationError):
            await engine.transition(alert.id, "reopen", "b")

    @pytest.mark.asyncio
    async def test_dismissed_alert_can_be_resolved(self, engine):
        alert = await engine.create_manual_alert("Flaky health check", "", AlertSeverity.LOW)
        assert await engine.dismiss_alert(alert.id, "a", "noise")
        assert await engine.resolve_alert(alert.id, "b")

    @pytest.mark.asyncio
    async def test_bulk_acknowledge(self, engine):
        a = await engine.create_manual_alert("A", "", AlertSeverity.LOW)
        b = await engine.create_manual_alert("B", "", AlertSeverity.LOW)
        await engine.resolve_alert(b.id, "x")

        outcomes = await engine.bulk_acknowledge([a.id, b.id, "missing"], "oncall")

        assert [o.success for o in outcomes] == [True, False, False]
        assert "resolved" in outcomes[1].error
        assert "not found" in outcomes[2].error

    @pytest.mark.asyncio
    async def test_bulk_resolve(self, engine):
        ids = [(await engine.create_manual_alert(f"A{i}", "", AlertSeverity.LOW)).id for i in range(3)]

        outcomes = await engine.bulk_resolve(ids, "oncall", "batch")

        assert all(o.success for o in outcomes)
        assert await engine.get_active_alerts() == []


# ── Manual alerts ────────────────────────────────────────────────────


class TestManualAlerts:
    @pytest.mark.asyncio
    async def test_manual_alerts_are_not_deduplicated(self, engine, alert_store):
        first = await engine.create_manual_alert("Deploy stuck", "", AlertSeverity.MEDIUM)
        second = await engine.create_manual_alert("Deploy stuck", "", AlertSeverity.MEDIUM)

        assert first.alert_type == MANUAL_ALERT_TYPE
        assert first.source_metric_id is None
        assert first.auto_resolve is False
        assert len(await alert_store.list_active_by_type(MANUAL_ALERT_TYPE)) == 2
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_manual_alert_seeds_escalation(self, engine, notifiers):
        alert = await engine.create_manual_alert(
            "Payment gateway down", "", AlertSeverity.CRITICAL, service="payments"
        )

        assert notifiers[ChannelType.EMAIL].calls[0]["recipients"] == ["on-call-engineer@company.com"]
        incidents = engine.escalations.incidents_for(alert.id)
        assert [i.policy_id for i in incidents] == ["critical_escalation"]

    @pytest.mark.asyncio
    async def test_manual_escalation(self, engine, notifiers):
        alert = await engine.create_manual_alert("Payment gateway down", "", AlertSeverity.CRITICAL)

        escalated = await engine.trigger_manual_escalation(alert.id)

        assert len(escalated) == 1
        assert escalated[0].escalation_level == 1
        assert notifiers[ChannelType.SLACK].calls[0]["config"]["channel"] == "#critical-alerts"
        assert len(notifiers[ChannelType.PAGERDUTY].calls) == 1

    @pytest.mark.asyncio
    async def test_manual_escalation_to_missing_level(self, engine):
        alert = await engine.create_manual_alert("Payment gateway down", "", AlertSeverity.CRITICAL)
        assert await engine.trigger_manual_escalation(alert.id, level=7) == []

    @pytest.mark.asyncio
    async def test_manual_escalation_unknown_alert(self, engine):
        with pytest.raises(AlertNotFoundError):
            await engine.trigger_manual_escalation("missing")

    @pytest.mark.asyncio
    async def test_channel_test(self, engine, notifiers):
        result = await engine.test_notification_channel(NotificationChannel(type="slack"))

        assert result.success
        call = notifiers[ChannelType.SLACK].calls[0]
        assert call["title"] == "Test Notification"
        assert call["recipients"] == ["test@example.com"]

    @pytest.mark.asyncio
    async def test_channel_test_unknown_type(self, engine):
        result = await engine.test_notification_channel(NotificationChannel(type="fax"))
        assert result.success is False
        assert "Unknown notification channel type" in result.error


# ── Queries ──────────────────────────────────────────────────────────


class TestQueries:
    @pytest.mark.asyncio
    async def test_statistics(self, bare_engine, clock):
        high = await bare_engine.create_manual_alert("A", "", AlertSeverity.HIGH)
        clock.advance(minutes=30)
        await bare_engine.resolve_alert(high.id, "oncall")
        await bare_engine.create_manual_alert("B", "", AlertSeverity.LOW)

        stats = await bare_engine.get_alert_statistics(TimeRange.DAY)

        assert stats.total_alerts == 2
        assert stats.by_severity == {"low": 1, "medium": 0, "high": 1, "critical": 0}
        assert stats.by_status == {"resolved": 1, "active": 1}
        assert stats.resolution_time_avg_minutes == pytest.approx(30.0)
        assert stats.escalations_triggered == 0

    @pytest.mark.asyncio
    async def test_statistics_respects_range(self, bare_engine, clock):
        await bare_engine.create_manual_alert("A", "", AlertSeverity.HIGH)
        clock.advance(minutes=90)

        assert (await bare_engine.get_alert_statistics(TimeRange.HOUR)).total_alerts == 0
        assert (await bare_engine.get_alert_statistics(TimeRange.DAY)).total_alerts == 1

    @pytest.mark.asyncio
    async def test_empty_statistics_have_all_severities(self, bare_engine):
        stats = await bare_engine.get_alert_statistics()
        assert set(stats.by_severity) == {"low", "medium", "high", "critical"}
        assert stats.resolution_time_avg_minutes == 0.0

    @pytest.mark.asyncio
    async def test_filtered_alerts(self, bare_engine):
        await bare_engine.create_manual_alert("A", "", AlertSeverity.HIGH, service="api")
        await bare_engine.create_manual_alert("B", "", AlertSeverity.LOW, service="db")

        assert len(await bare_engine.get_alerts(severity=AlertSeverity.HIGH)) == 1
        assert [a.title for a in await bare_engine.get_alerts(service="db")] == ["B"]
        assert len(await bare_engine.get_alerts(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_status(self, engine, clock):
        status = await engine.get_status()
        assert status.is_running is False
        assert status.active_rules == 6
        assert status.active_policies == 2
        assert status.total_alerts_today == 0

        await engine.evaluate_rules()
        await engine.process_escalations()
        status = await engine.get_status()
        assert status.evaluation_ticks == 1
        assert status.escalation_ticks == 1
        assert status.last_evaluation_at == clock.now()


# ── In-memory metric source ──────────────────────────────────────────


class TestInMemoryMetricSource:
    START = datetime(2024, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_old_samples_are_discarded(self):
        source = InMemoryMetricSource(retention_minutes=60)
        for minute in range(10_000):
            source.record("api", "cpu_usage", 50.0, self.START + timedelta(minutes=minute))

        latest = self.START + timedelta(minutes=9_999)
        assert len(source) == 61
        recent = await source.fetch_samples("cpu_usage", "api", latest - timedelta(minutes=5))
        assert len(recent) == 6
        assert recent[0].timestamp == latest

    def test_late_sample_beyond_retention_is_dropped(self):
        source = InMemoryMetricSource(retention_minutes=10)
        source.record("api", "cpu_usage", 50.0, self.START)
        source.record("api", "cpu_usage", 40.0, self.START - timedelta(minutes=30))
        source.record("api", "cpu_usage", 45.0, self.START - timedelta(minutes=5))
        assert [s.metric_value for s in source._samples] == [50.0, 45.0]

    def test_default_retention_covers_default_rule_windows(self):
        windows = [r.condition.evaluation_window_minutes for r in build_default_rules()]
        assert max(windows) <= DEFAULT_RETENTION_MINUTES


# ── Configuration ────────────────────────────────────────────────────


class TestConfiguration:
    def test_add_and_remove_rule(self, bare_engine):
        rule = AlertRule(
            id="queue_depth",
            name="Queue Depth",
            metric_type="queue_depth",
            condition=AlertCondition(ConditionOperator.GREATER_THAN, 1000.0),
            severity=AlertSeverity.MEDIUM,
        )
        bare_engine.add_alert_rule(rule)
        assert [r.id for r in bare_engine.get_alert_rules()] == ["queue_depth"]
        assert bare_engine.remove_alert_rule("queue_depth")
        assert bare_engine.get_alert_rules() == []

    @pytest.mark.asyncio
    async def test_removed_rule_releases_its_lock(self, engine, series):
        series("dashboard_api", "response_time", [2100.0] * 3, unit="ms")
        await engine.evaluate_rules()
        assert "high_response_time" in engine.evaluator._locks

        assert engine.remove_alert_rule("high_response_time")

        assert "high_response_time" not in engine.evaluator._locks
        assert engine.remove_alert_rule("high_response_time") is False

    def test_invalid_rule_rejected(self, bare_engine):
        rule = AlertRule(
            id="bad",
            name="Bad",
            condition=AlertCondition(ConditionOperator.BETWEEN, 1.0),
            severity=AlertSeverity.LOW,
        )
        with pytest.raises(ConfigurationError):
            bare_engine.add_alert_rule(rule)

    def test_defaults_can_be_disabled(self, metric_source, alert_store):
        from src.alerting.config import AlertingConfig

        engine = AlertingEngine(
            metric_source,
            alert_store,
            config=AlertingConfig(load_default_rules=False, load_default_policies=False),
        )
        assert engine.get_alert_rules() == []
        assert engine.get_escalation_policies() == []


# ── Loops ────────────────────────────────────────────────────────────


class TestLoops:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, engine):
        await engine.start(evaluation_interval_s=0.01, escalation_interval_s=0.01)
        assert engine.is_running
        await asyncio.sleep(0.05)
        await engine.stop()

        assert engine.is_running is False
        status = await engine.get_status()
        assert status.evaluation_ticks >= 1
        assert status.escalation_ticks >= 1

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, engine):
        await engine.start(evaluation_interval_s=10, escalation_interval_s=10)
        tasks = list(engine._tasks)
        await engine.start(evaluation_interval_s=10, escalation_interval_s=10)
        assert engine._tasks == tasks
        await engine.stop()

    @pytest.mark.asyncio
    async def test_loop_survives_failing_ticks(self, alert_store, dispatcher, clock):
        engine = AlertingEngine(BrokenMetricSource(), alert_store, dispatcher, clock)
        await engine.start(evaluation_interval_s=0.01, escalation_interval_s=0.01)
        await asyncio.sleep(0.1)
        await engine.stop()

        assert (await engine.get_status()).evaluation_ticks >= 2
