"""Pytest configuration and shared fixtures."""

import sys
from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.alerting.channels.base import DeliveryResult  # noqa: E402
from src.alerting.channels.dispatcher import NotificationDispatcher  # noqa: E402
from src.alerting.clock import ManualClock  # noqa: E402
from src.alerting.config import ChannelType  # noqa: E402
from src.alerting.engine import AlertingEngine  # noqa: E402
from src.alerting.store import InMemoryAlertStore, InMemoryMetricSource  # noqa: E402


class RecordingNotifier:
    """Notifier double that records every delivery.

    ``fail`` makes every send return a failed result; ``raise_exc``
    makes ``send`` raise it.
    """

    def __init__(self, kind: ChannelType, fail: bool = False, raise_exc: Exception = None):
        self._kind = kind
        self.fail = fail
        self.raise_exc = raise_exc
        self.calls: list[dict[str, Any]] = []

    @property
    def kind(self) -> ChannelType:
        return self._kind

    def is_configured(self) -> bool:
        return True

    async def send(self, alert, config, recipients) -> DeliveryResult:
        self.calls.append({
            "alert_id": alert.id,
            "title": alert.title,
            "config": dict(config),
            "recipients": list(recipients),
        })
        if self.raise_exc is not None:
            raise self.raise_exc
        if self.fail:
            return DeliveryResult.failed(self._kind.value, "provider rejected message")
        return DeliveryResult(success=True, channel=self._kind.value, message_id=f"{self._kind.value}_{alert.id}")


def record_series(source, clock, service, metric, values, every_seconds=30, unit=""):
    """Record ``values`` oldest first, the last one stamped at ``clock.now()``."""
    now = clock.now()
    count = len(values)
    for index, value in enumerate(values):
        source.record(
            service_name=service,
            metric_type=metric,
            value=value,
            timestamp=now - timedelta(seconds=every_seconds * (count - 1 - index)),
            unit=unit,
        )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def metric_source():
    return InMemoryMetricSource()


@pytest.fixture
def alert_store():
    return InMemoryAlertStore()


@pytest.fixture
def notifiers():
    return {kind: RecordingNotifier(kind) for kind in ChannelType}


@pytest.fixture
def dispatcher(notifiers):
    return NotificationDispatcher(notifiers.values())


@pytest.fixture
def engine(metric_source, alert_store, dispatcher, clock):
    """Engine with the built-in rules and escalation policies."""
    return AlertingEngine(
        metric_source=metric_source,
        store=alert_store,
        dispatcher=dispatcher,
        clock=clock,
    )


@pytest.fixture
def bare_engine(metric_source, alert_store, dispatcher, clock):
    """Engine with no rules and no policies."""
    return AlertingEngine(
        metric_source=metric_source,
        store=alert_store,
        dispatcher=dispatcher,
        clock=clock,
        rules=[],
        policies=[],
    )


@pytest.fixture
def series(metric_source, clock):
    """Record a series for one service/metric ending at the current time."""
    def _record(service, metric, values, every_seconds=30, unit=""):
        record_series(metric_source, clock, service, metric, values, every_seconds, unit)
    return _record


@pytest.fixture
def make_notifier():
    return RecordingNotifier
