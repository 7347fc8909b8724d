"""Tests for the SQLAlchemy alert store and metric source.

Each test runs against its own SQLite file through aiosqlite.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.alerting.clock import ManualClock
from src.alerting.config import AlertSeverity, AlertStatus
from src.alerting.engine import AlertingEngine
from src.alerting.exceptions import DuplicateActiveAlertError, PersistenceError
from src.alerting.models import MetricSample, SystemAlert
from src.db.base import Base
from src.db.engine import build_async_engine, create_tables, get_async_session_factory
from src.db.stores import SqlAlertStore, SqlMetricSource

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


async def _open(tmp_path):
    db_engine = build_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'alerts.db'}")
    await create_tables(db_engine)
    sessions = get_async_session_factory(db_engine)
    return db_engine, SqlAlertStore(sessions), SqlMetricSource(sessions)


def _alert(alert_type="high_cpu_usage", severity=AlertSeverity.HIGH, service="api",
           source_metric_id="sample-1", created_at=NOW):
    return SystemAlert(
        alert_type=alert_type,
        severity=severity,
        title="High CPU Usage",
        description="api: cpu_usage exceeded threshold of 80%",
        source_service=service,
        source_metric_id=source_metric_id,
        auto_resolve=True,
        trigger_condition={"operator": "greater_than", "threshold": 80.0},
        alert_data={"metric_value": 93.0},
        created_at=created_at,
        updated_at=created_at,
    )


def _sample(value, at, metric="cpu_usage", service="api"):
    return MetricSample(
        service_name=service, metric_type=metric, metric_value=value, unit="%", timestamp=at
    )


class TestSchema:
    def test_tables_registered(self):
        assert {"system_alerts", "system_health_metrics"} <= set(Base.metadata.tables)

    def test_active_type_index_is_partial_and_unique(self):
        index = next(
            i for i in Base.metadata.tables["system_alerts"].indexes
            if i.name == "uq_system_alerts_active_type"
        )
        assert index.unique
        assert "source_metric_id IS NOT NULL" in str(index.dialect_options["sqlite"]["where"])


# ── Alert store ──────────────────────────────────────────────────────


class TestSqlAlertStore:
    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path):
        db_engine, store, _ = await _open(tmp_path)
        try:
            alert = await store.insert(_alert())
            loaded = await store.get(alert.id)
            assert loaded.severity == AlertSeverity.HIGH
            assert loaded.status == AlertStatus.ACTIVE
            assert loaded.created_at == NOW
            assert loaded.created_at.tzinfo is not None
            assert loaded.trigger_condition == {"operator": "greater_than", "threshold": 80.0}
            assert loaded.alert_data == {"metric_value": 93.0}
            assert await store.get("missing") is None
        finally:
            await db_engine.dispose()

    @pytest.mark.asyncio
    async def test_update(self, tmp_path):
        db_engine, store, _ = await _open(tmp_path)
        try:
            alert = await store.insert(_alert())
            alert.status = AlertStatus.ACKNOWLEDGED
            alert.acknowledged_by = "oncall"
            alert.acknowledged_at = NOW + timedelta(minutes=2)
            await store.update(alert)
            loaded = await store.get(alert.id)
            assert loaded.status == AlertStatus.ACKNOWLEDGED
            assert loaded.acknowledged_at == NOW + timedelta(minutes=2)
        finally:
            await db_engine.dispose()

    @pytest.mark.asyncio
    async def test_update_missing(self, tmp_path):
        db_engine, store, _ = await _open(tmp_path)
        try:
            with pytest.raises(PersistenceError):
                await store.update(_alert())
        finally:
            await db_engine.dispose()

    @pytest.mark.asyncio
    async def test_duplicate_active_alert_rejected(self, tmp_path):
        db_engine, store, _ = await _open(tmp_path)
        try:
            await store.insert(_alert())
            with pytest.raises(DuplicateActiveAlertError):
                await store.insert(_alert(source_metric_id="sample-2"))
            assert len(await store.list_active_by_type("high_cpu_usage")) == 1
        finally:
            await db_engine.dispose()

    @pytest.mark.asyncio
    async def test_new_alert_allowed_after_resolve(self, tmp_path):
        db_engine, store, _ = await _open(tmp_path)
        try:
            first = await store.insert(_alert())
            first.status = AlertStatus.RESOLVED
            await store.update(first)
            second = await store.insert(_alert(source_metric_id="sample-2"))
            assert (await store.find_active_by_type("high_cpu_usage")).id == second.id
        finally:
            await db_engine.dispose()

    @pytest.mark.asyncio
    async def test_manual_alerts_exempt_from_uniqueness(self, tmp_path):
        db_engine, store, _ = await _open(tmp_path)
        try:
            await store.insert(_alert(alert_type="manual_alert", source_metric_id=None))
            await store.insert(_alert(alert_type="manual_alert", source_metric_id=None))
            assert len(await store.list_active_by_type("manual_alert")) == 2
        finally:
            await db_engine.dispose()

    @pytest.mark.asyncio
    async def test_list_filters_newest_first(self, tmp_path):
        db_engine, store, _ = await _open(tmp_path)
        try:
            await store.insert(_alert("a", AlertSeverity.LOW, "api", created_at=NOW - timedelta(hours=3)))
            await store.insert(_alert("b", AlertSeverity.HIGH, "db", created_at=NOW - timedelta(minutes=30)))
            await store.insert(_alert("c", AlertSeverity.HIGH, "api", created_at=NOW))

            assert [a.alert_type for a in await store.list_alerts()] == ["c", "b", "a"]
            high = await store.list_alerts(severity=AlertSeverity.HIGH)
            assert [a.alert_type for a in high] == ["c", "b"]
            api = await store.list_alerts(service="api")
            assert [a.alert_type for a in api] == ["c", "a"]
            recent = await store.list_alerts(since=NOW - timedelta(hours=1))
            assert [a.alert_type for a in recent] == ["c", "b"]
            assert len(await store.list_alerts(limit=1)) == 1
            assert await store.list_alerts(status=AlertStatus.RESOLVED) == []
        finally:
            await db_engine.dispose()


# ── Metric source ────────────────────────────────────────────────────


class TestSqlMetricSource:
    @pytest.mark.asyncio
    async def test_ingest_and_fetch(self, tmp_path):
        db_engine, _, source = await _open(tmp_path)
        try:
            await source.ingest(_sample(70.0, NOW - timedelta(minutes=10)))
            await source.ingest(_sample(85.0, NOW - timedelta(minutes=1)))
            await source.ingest(_sample(90.0, NOW))
            await source.ingest(_sample(99.0, NOW, metric="memory_usage"))
            await source.ingest(_sample(88.0, NOW, service="db"))

            samples = await source.fetch_samples("cpu_usage", "api", NOW - timedelta(minutes=5))
            assert [s.metric_value for s in samples] == [90.0, 85.0]
            assert samples[0].timestamp == NOW
            assert samples[0].unit == "%"

            any_service = await source.fetch_samples("cpu_usage", None, NOW - timedelta(minutes=5))
            assert len(any_service) == 3
        finally:
            await db_engine.dispose()


# ── Engine on SQL storage ────────────────────────────────────────────


class TestEngineOnDatabase:
    @pytest.mark.asyncio
    async def test_breach_creates_persisted_alert(self, tmp_path, dispatcher):
        db_engine, store, source = await _open(tmp_path)
        clock = ManualClock(NOW)
        engine = AlertingEngine(source, store, dispatcher=dispatcher, clock=clock)
        try:
            for seconds in (90, 60, 30, 0):
                await source.ingest(_sample(97.0, NOW - timedelta(seconds=seconds), metric="memory_usage"))

            result = await engine.evaluate_rules()
            assert len(result.alerts_created) == 1
            assert (await engine.evaluate_rules()).alerts_created == []

            (alert,) = await engine.get_active_alerts()
            assert alert.alert_type == "critical_memory_usage"
            assert alert.severity == AlertSeverity.CRITICAL

            assert await engine.acknowledge_alert(alert.id, "oncall")
            assert (await store.get(alert.id)).status == AlertStatus.ACKNOWLEDGED
        finally:
            await db_engine.dispose()
