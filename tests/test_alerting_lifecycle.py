"""Tests for the alert lifecycle state machine."""

from datetime import datetime, timedelta, timezone

import pytest

from src.alerting import lifecycle
from src.alerting.config import AlertSeverity, AlertStatus
from src.alerting.exceptions import InvalidTransitionError
from src.alerting.models import SystemAlert

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
LATER = NOW + timedelta(minutes=5)


def _alert(status=AlertStatus.ACTIVE, auto_resolve=True):
    return SystemAlert(
        alert_type="high_cpu_usage",
        severity=AlertSeverity.MEDIUM,
        title="High CPU Usage",
        status=status,
        auto_resolve=auto_resolve,
        source_metric_id="sample-1",
        created_at=NOW,
        updated_at=NOW,
    )


class TestAcknowledge:
    def test_active_to_acknowledged(self):
        alert = lifecycle.acknowledge(_alert(), "oncall@company.com", LATER, "looking")
        assert alert.status == AlertStatus.ACKNOWLEDGED
        assert alert.acknowledged_by == "oncall@company.com"
        assert alert.acknowledged_at == LATER
        assert alert.acknowledgement_notes == "looking"
        assert alert.updated_at == LATER

    def test_reacknowledge_updates_actor(self):
        alert = lifecycle.acknowledge(_alert(), "a", NOW)
        lifecycle.acknowledge(alert, "b", LATER)
        assert alert.acknowledged_by == "b"
        assert alert.acknowledged_at == LATER

    @pytest.mark.parametrize("status", [AlertStatus.RESOLVED, AlertStatus.DISMISSED])
    def test_cannot_acknowledge_closed(self, status):
        with pytest.raises(InvalidTransitionError):
            lifecycle.acknowledge(_alert(status), "a", LATER)


class TestResolve:
    @pytest.mark.parametrize(
        "status", [AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED, AlertStatus.DISMISSED]
    )
    def test_resolvable_statuses(self, status):
        alert = lifecycle.resolve(_alert(status), "a", LATER, "fixed")
        assert alert.status == AlertStatus.RESOLVED
        assert alert.resolved_by == "a"
        assert alert.resolved_at == LATER
        assert alert.resolution_notes == "fixed"

    def test_resolved_is_terminal(self):
        alert = lifecycle.resolve(_alert(), "a", NOW)
        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle.resolve(alert, "b", LATER)
        assert exc_info.value.current == "resolved"
        assert alert.resolved_by == "a"


class TestDismiss:
    def test_dismiss_active(self):
        alert = lifecycle.dismiss(_alert(), "a", LATER, "noise")
        assert alert.status == AlertStatus.DISMISSED
        assert alert.resolved_by == "a"
        assert alert.resolution_notes == "noise"

    def test_cannot_dismiss_acknowledged(self):
        with pytest.raises(InvalidTransitionError):
            lifecycle.dismiss(_alert(AlertStatus.ACKNOWLEDGED), "a", LATER)


class TestAutoResolve:
    def test_system_actor_and_notes(self):
        alert = lifecycle.auto_resolve(_alert(), LATER)
        assert alert.status == AlertStatus.RESOLVED
        assert alert.resolved_by == "system"
        assert alert.resolution_notes == lifecycle.AUTO_RESOLVE_NOTES

    def test_requires_auto_resolve_flag(self):
        with pytest.raises(InvalidTransitionError):
            lifecycle.auto_resolve(_alert(auto_resolve=False), LATER)

    def test_can_transition(self):
        assert lifecycle.can_transition(_alert(), "dismiss")
        assert not lifecycle.can_transition(_alert(AlertStatus.RESOLVED), "acknowledge")
        assert not lifecycle.can_transition(_alert(), "reopen")
