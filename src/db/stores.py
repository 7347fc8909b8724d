"""SQLAlchemy implementations of the alert store and metric source."""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.alerting.config import AlertSeverity, AlertStatus
from src.alerting.exceptions import DuplicateActiveAlertError, FetchError, PersistenceError
from src.alerting.models import MetricSample, SystemAlert
from src.db.models import HealthMetricRecord, SystemAlertRecord

logger = logging.getLogger(__name__)

ALERT_COLUMNS = (
    "id",
    "alert_type",
    "severity",
    "title",
    "description",
    "source_service",
    "source_metric_id",
    "status",
    "acknowledged_by",
    "acknowledged_at",
    "acknowledgement_notes",
    "resolved_by",
    "resolved_at",
    "resolution_notes",
    "auto_resolve",
    "trigger_condition",
    "alert_data",
    "created_at",
    "updated_at",
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return _aware(value).astimezone(timezone.utc)


def alert_to_record(alert: SystemAlert, record: Optional[SystemAlertRecord] = None) -> SystemAlertRecord:
    record = record or SystemAlertRecord()
    for column in ALERT_COLUMNS:
        value = getattr(alert, column)
        if isinstance(value, datetime):
            value = _utc(value)
        setattr(record, column, value)
    return record


def record_to_alert(record: SystemAlertRecord) -> SystemAlert:
    return SystemAlert(
        id=record.id,
        alert_type=record.alert_type,
        severity=record.severity,
        title=record.title,
        description=record.description or "",
        source_service=record.source_service,
        source_metric_id=record.source_metric_id,
        status=record.status,
        acknowledged_by=record.acknowledged_by,
        acknowledged_at=_aware(record.acknowledged_at),
        acknowledgement_notes=record.acknowledgement_notes,
        resolved_by=record.resolved_by,
        resolved_at=_aware(record.resolved_at),
        resolution_notes=record.resolution_notes,
        auto_resolve=bool(record.auto_resolve),
        trigger_condition=dict(record.trigger_condition or {}),
        alert_data=dict(record.alert_data or {}),
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
    )


class SqlAlertStore:
    """AlertStore backed by the ``system_alerts`` table.

    The partial unique index on active alert types turns a concurrent
    duplicate insert into DuplicateActiveAlertError.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._sessions = session_factory

    async def insert(self, alert: SystemAlert) -> SystemAlert:
        try:
            async with self._sessions() as session:
                session.add(alert_to_record(alert))
                await session.commit()
        except IntegrityError as e:
            if alert.source_metric_id is not None and await self.find_active_by_type(alert.alert_type):
                raise DuplicateActiveAlertError(alert.alert_type) from e
            raise PersistenceError(f"Inserting alert {alert.id} failed: {e}") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Inserting alert {alert.id} failed: {e}") from e
        return alert

    async def get(self, alert_id: str) -> Optional[SystemAlert]:
        try:
            async with self._sessions() as session:
                record = await session.get(SystemAlertRecord, alert_id)
                return record_to_alert(record) if record else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Loading alert {alert_id} failed: {e}") from e

    async def update(self, alert: SystemAlert) -> SystemAlert:
        try:
            async with self._sessions() as session:
                record = await session.get(SystemAlertRecord, alert.id)
                if record is None:
                    raise PersistenceError(f"Alert {alert.id} does not exist")
                alert_to_record(alert, record)
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Updating alert {alert.id} failed: {e}") from e
        return alert

    async def find_active_by_type(self, alert_type: str) -> Optional[SystemAlert]:
        active = await self.list_active_by_type(alert_type)
        return active[0] if active else None

    async def list_active_by_type(self, alert_type: str) -> List[SystemAlert]:
        stmt = (
            select(SystemAlertRecord)
            .where(SystemAlertRecord.alert_type == alert_type)
            .where(SystemAlertRecord.status == AlertStatus.ACTIVE)
            .order_by(SystemAlertRecord.created_at.desc())
        )
        return await self._select(stmt)

    async def list_alerts(
        self,
        status: Optional[AlertStatus] = None,
        severity: Optional[AlertSeverity] = None,
        service: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[SystemAlert]:
        stmt = select(SystemAlertRecord)
        if status is not None:
            stmt = stmt.where(SystemAlertRecord.status == status)
        if severity is not None:
            stmt = stmt.where(SystemAlertRecord.severity == severity)
        if service is not None:
            stmt = stmt.where(SystemAlertRecord.source_service == service)
        if since is not None:
            stmt = stmt.where(SystemAlertRecord.created_at >= _utc(since))
        stmt = stmt.order_by(SystemAlertRecord.created_at.desc())
        if limit:
            stmt = stmt.limit(limit)
        return await self._select(stmt)

    async def _select(self, stmt) -> List[SystemAlert]:
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return [record_to_alert(r) for r in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Querying alerts failed: {e}") from e


class SqlMetricSource:
    """MetricSource backed by the ``system_health_metrics`` table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._sessions = session_factory

    async def ingest(self, sample: MetricSample) -> MetricSample:
        try:
            async with self._sessions() as session:
                session.add(HealthMetricRecord(
                    id=sample.id,
                    service_name=sample.service_name,
                    metric_type=sample.metric_type,
                    metric_value=sample.metric_value,
                    unit=sample.unit,
                    timestamp=_utc(sample.timestamp),
                ))
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Recording metric sample failed: {e}") from e
        return sample

    async def fetch_samples(
        self,
        metric_type: Optional[str],
        service_name: Optional[str],
        since: datetime,
    ) -> List[MetricSample]:
        stmt = select(HealthMetricRecord).where(HealthMetricRecord.timestamp >= _utc(since))
        if metric_type is not None:
            stmt = stmt.where(HealthMetricRecord.metric_type == metric_type)
        if service_name is not None:
            stmt = stmt.where(HealthMetricRecord.service_name == service_name)
        stmt = stmt.order_by(HealthMetricRecord.timestamp.desc())

        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                records = result.scalars().all()
        except SQLAlchemyError as e:
            raise FetchError(f"Fetching {metric_type} samples failed: {e}") from e

        return [
            MetricSample(
                id=r.id,
                service_name=r.service_name,
                metric_type=r.metric_type,
                metric_value=r.metric_value,
                unit=r.unit or "",
                timestamp=_aware(r.timestamp),
            )
            for r in records
        ]
