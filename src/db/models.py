"""SQLAlchemy ORM models for the alerting service.

Tables:
- system_alerts: Alert records and their lifecycle stamps
- system_health_metrics: Time-series health samples per service/metric
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    Index,
    String,
    Text,
    text,
)

from src.alerting.config import AlertSeverity, AlertStatus
from src.db.base import Base

# One active rule-driven alert per alert_type. Manual alerts carry no
# source metric and are exempt.
ACTIVE_ALERT_PREDICATE = "status = 'active' AND source_metric_id IS NOT NULL"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class SystemAlertRecord(Base):
    """A persisted alert."""

    __tablename__ = "system_alerts"

    id = Column(String(64), primary_key=True)
    alert_type = Column(String(100), nullable=False, index=True)
    severity = Column(
        Enum(AlertSeverity, name="alert_severity", values_callable=_enum_values),
        nullable=False,
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    source_service = Column(String(100), index=True)
    source_metric_id = Column(String(64))
    status = Column(
        Enum(AlertStatus, name="alert_status", values_callable=_enum_values),
        nullable=False,
        default=AlertStatus.ACTIVE,
    )
    acknowledged_by = Column(String(255))
    acknowledged_at = Column(DateTime(timezone=True))
    acknowledgement_notes = Column(Text)
    resolved_by = Column(String(255))
    resolved_at = Column(DateTime(timezone=True))
    resolution_notes = Column(Text)
    auto_resolve = Column(Boolean, nullable=False, default=False)
    trigger_condition = Column(JSON, default=dict)
    alert_data = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(
            "uq_system_alerts_active_type",
            "alert_type",
            unique=True,
            postgresql_where=text(ACTIVE_ALERT_PREDICATE),
            sqlite_where=text(ACTIVE_ALERT_PREDICATE),
        ),
        Index("ix_system_alerts_status_severity", "status", "severity"),
    )


class HealthMetricRecord(Base):
    """A single health metric sample."""

    __tablename__ = "system_health_metrics"

    id = Column(String(64), primary_key=True)
    service_name = Column(String(100), nullable=False)
    metric_type = Column(String(50), nullable=False)
    metric_value = Column(Float, nullable=False)
    unit = Column(String(20), default="")
    timestamp = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_health_metrics_scope_time", "metric_type", "service_name", "timestamp"),
    )
