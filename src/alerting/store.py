"""Alert store and metric source contracts with in-memory implementations.

The in-memory variants back tests and single-process deployments; the
SQLAlchemy implementations live in ``src.db.stores``.
"""

import copy
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol, runtime_checkable

from src.alerting.config import AlertSeverity, AlertStatus
from src.alerting.exceptions import DuplicateActiveAlertError, PersistenceError
from src.alerting.models import MetricSample, SystemAlert

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_MINUTES = 60.0


class MetricSource(Protocol):
    """Supplies health metric samples."""

    async def fetch_samples(
        self,
        metric_type: Optional[str],
        service_name: Optional[str],
        since: datetime,
    ) -> List[MetricSample]:
        """Samples at or after ``since``, newest first. ``None`` scopes match any."""
        ...


@runtime_checkable
class MetricSink(Protocol):
    """Accepts pushed health metric samples."""

    async def ingest(self, sample: MetricSample) -> MetricSample:
        ...


class AlertStore(Protocol):
    """Persists SystemAlert records.

    At most one active rule-driven alert may exist per ``alert_type``;
    ``insert`` raises DuplicateActiveAlertError otherwise. Manual alerts
    (no ``source_metric_id``) are exempt.
    """

    async def insert(self, alert: SystemAlert) -> SystemAlert:
        ...

    async def get(self, alert_id: str) -> Optional[SystemAlert]:
        ...

    async def update(self, alert: SystemAlert) -> SystemAlert:
        ...

    async def find_active_by_type(self, alert_type: str) -> Optional[SystemAlert]:
        ...

    async def list_active_by_type(self, alert_type: str) -> List[SystemAlert]:
        ...

    async def list_alerts(
        self,
        status: Optional[AlertStatus] = None,
        severity: Optional[AlertSeverity] = None,
        service: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[SystemAlert]:
        ...


def is_rule_driven(alert: SystemAlert) -> bool:
    """Rule-driven alerts carry the id of the sample that triggered them."""
    return alert.source_metric_id is not None


class InMemoryAlertStore:
    """Dict-backed AlertStore.

    Records are copied on the way in and out so callers only change
    persisted state through ``update``.
    """

    def __init__(self) -> None:
        self._alerts: Dict[str, SystemAlert] = {}

    async def insert(self, alert: SystemAlert) -> SystemAlert:
        if alert.id in self._alerts:
            raise PersistenceError(f"Alert {alert.id} already exists")
        if alert.is_active and is_rule_driven(alert):
            for existing in self._alerts.values():
                if (
                    existing.alert_type == alert.alert_type
                    and existing.is_active
                    and is_rule_driven(existing)
                ):
                    raise DuplicateActiveAlertError(alert.alert_type)
        self._alerts[alert.id] = copy.deepcopy(alert)
        return copy.deepcopy(alert)

    async def get(self, alert_id: str) -> Optional[SystemAlert]:
        alert = self._alerts.get(alert_id)
        return copy.deepcopy(alert) if alert else None

    async def update(self, alert: SystemAlert) -> SystemAlert:
        if alert.id not in self._alerts:
            raise PersistenceError(f"Alert {alert.id} does not exist")
        self._alerts[alert.id] = copy.deepcopy(alert)
        return copy.deepcopy(alert)

    async def find_active_by_type(self, alert_type: str) -> Optional[SystemAlert]:
        active = await self.list_active_by_type(alert_type)
        return active[0] if active else None

    async def list_active_by_type(self, alert_type: str) -> List[SystemAlert]:
        return await self.list_alerts_where(
            lambda a: a.alert_type == alert_type and a.is_active
        )

    async def list_alerts(
        self,
        status: Optional[AlertStatus] = None,
        severity: Optional[AlertSeverity] = None,
        service: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[SystemAlert]:
        def _match(alert: SystemAlert) -> bool:
            if status is not None and alert.status != status:
                return False
            if severity is not None and alert.severity != severity:
                return False
            if service is not None and alert.source_service != service:
                return False
            if since is not None and alert.created_at < since:
                return False
            return True

        alerts = await self.list_alerts_where(_match)
        return alerts[:limit] if limit else alerts

    async def list_alerts_where(self, predicate) -> List[SystemAlert]:
        """Matching alerts, newest first."""
        found = [copy.deepcopy(a) for a in self._alerts.values() if predicate(a)]
        found.sort(key=lambda a: a.created_at, reverse=True)
        return found

    def __len__(self) -> int:
        return len(self._alerts)


class InMemoryMetricSource:
    """List-backed MetricSource fed by ``record``.

    Samples older than ``retention_minutes`` before the newest one seen
    are discarded, so the list stays bounded under continuous ingest.
    """

    def __init__(self, retention_minutes: float = DEFAULT_RETENTION_MINUTES) -> None:
        self.retention = timedelta(minutes=retention_minutes)
        self._samples: List[MetricSample] = []
        self._latest: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self._samples)

    def add(self, sample: MetricSample) -> MetricSample:
        if self._latest is not None and sample.timestamp < self._latest - self.retention:
            return sample
        self._samples.append(sample)
        if self._latest is None or sample.timestamp > self._latest:
            self._latest = sample.timestamp
            self._prune()
        return sample

    def _prune(self) -> None:
        cutoff = self._latest - self.retention
        if any(s.timestamp < cutoff for s in self._samples):
            self._samples = [s for s in self._samples if s.timestamp >= cutoff]

    def record(
        self,
        service_name: str,
        metric_type: str,
        value: float,
        timestamp: datetime,
        unit: str = "",
    ) -> MetricSample:
        return self.add(MetricSample(
            service_name=service_name,
            metric_type=metric_type,
            metric_value=value,
            unit=unit,
            timestamp=timestamp,
        ))

    async def ingest(self, sample: MetricSample) -> MetricSample:
        return self.add(sample)

    def clear(self) -> None:
        self._samples.clear()
        self._latest = None

    async def fetch_samples(
        self,
        metric_type: Optional[str],
        service_name: Optional[str],
        since: datetime,
    ) -> List[MetricSample]:
        found = [
            s for s in self._samples
            if s.timestamp >= since
            and (metric_type is None or s.metric_type == metric_type)
            and (service_name is None or s.service_name == service_name)
        ]
        found.sort(key=lambda s: s.timestamp, reverse=True)
        return found
