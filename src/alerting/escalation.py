"""Escalation management.

Tracks one incident per (alert, matching policy), executes level 0 when
the alert opens, and advances incidents level by level as their delays
elapse. An incident is dropped once its alert is no longer active, its
levels are exhausted, a gated level leaves it without a pending timer,
or its policy is removed.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from src.alerting.channels.dispatcher import NotificationDispatcher
from src.alerting.clock import Clock
from src.alerting.config import AlertStatus, severity_at_least
from src.alerting.models import (
    EscalationLevel,
    EscalationPolicy,
    EscalationResult,
    IncidentContext,
    LevelConditions,
    NotificationRecord,
    SystemAlert,
)
from src.alerting.registry import PolicyRegistry
from src.alerting.store import AlertStore
from src.logging_config.context import LogContext

logger = logging.getLogger(__name__)


def gates_pass(conditions: Optional[LevelConditions], alert: SystemAlert) -> bool:
    """Check a level's gating conditions against the current alert state."""
    if conditions is None:
        return True
    if conditions.if_not_acknowledged and alert.status == AlertStatus.ACKNOWLEDGED:
        return False
    if conditions.if_not_resolved and alert.status == AlertStatus.RESOLVED:
        return False
    if conditions.if_severity_at_least is not None and not severity_at_least(
        alert.severity, conditions.if_severity_at_least
    ):
        return False
    return True


def make_incident_id(alert_id: str, policy_id: str, now: datetime) -> str:
    return f"incident_{alert_id}_{policy_id}_{int(now.timestamp() * 1000)}"


class EscalationManager:
    """Incident tracker and escalation scheduler.

    Incidents live in memory only; see DESIGN.md for why they are not
    re-seeded after a restart.
    """

    def __init__(
        self,
        policies: PolicyRegistry,
        store: AlertStore,
        dispatcher: NotificationDispatcher,
        clock: Clock,
    ) -> None:
        self.policies = policies
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock
        self._incidents: Dict[str, IncidentContext] = {}
        self._in_flight: set[str] = set()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def incidents(self) -> List[IncidentContext]:
        return list(self._incidents.values())

    def incidents_for(self, alert_id: str) -> List[IncidentContext]:
        return [i for i in self._incidents.values() if i.alert_id == alert_id]

    def get(self, incident_id: str) -> Optional[IncidentContext]:
        return self._incidents.get(incident_id)

    @property
    def active_count(self) -> int:
        return len(self._incidents)

    # ------------------------------------------------------------------
    # Lifecycle hooks
    # ------------------------------------------------------------------

    async def seed(self, alert: SystemAlert) -> List[IncidentContext]:
        """Open incidents for every enabled policy matching a new alert.

        Level 0 of each incident is executed immediately.

        Returns:
            Incidents still awaiting a later level.
        """
        now = self.clock.now()
        pending = []
        for policy in self.policies.enabled():
            if not policy.applies_to.matches(alert):
                continue

            incident = IncidentContext(
                incident_id=make_incident_id(alert.id, policy.id, now),
                alert_id=alert.id,
                policy_id=policy.id,
                created_at=now,
            )
            self._incidents[incident.incident_id] = incident
            with LogContext(alert_id=alert.id, incident_id=incident.incident_id):
                logger.info("Incident opened under policy %s", policy.id)
                await self._execute_level(incident, policy, alert, 0)
                if self._settle(incident):
                    pending.append(incident)
        return pending

    def drop_for_alert(self, alert_id: str) -> int:
        """Forget every incident of an alert. Returns how many were dropped."""
        dropped = [iid for iid, i in self._incidents.items() if i.alert_id == alert_id]
        for incident_id in dropped:
            del self._incidents[incident_id]
        if dropped:
            logger.info("Dropped %d incidents for alert %s", len(dropped), alert_id)
        return len(dropped)

    def drop_for_policy(self, policy_id: str) -> int:
        dropped = [iid for iid, i in self._incidents.items() if i.policy_id == policy_id]
        for incident_id in dropped:
            del self._incidents[incident_id]
        return len(dropped)

    # ------------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------------

    async def process_due(self) -> EscalationResult:
        """Advance every incident whose next escalation time has passed."""
        now = self.clock.now()
        result = EscalationResult()

        for incident in list(self._incidents.values()):
            if incident.incident_id in self._in_flight:
                continue

            policy = self.policies.get(incident.policy_id)
            if policy is None or not policy.enabled:
                self._drop(incident, "policy removed or disabled")
                result.incidents_dropped.append(incident.incident_id)
                continue

            if not incident.is_due(now):
                continue

            result.incidents_checked += 1
            self._in_flight.add(incident.incident_id)
            with LogContext(alert_id=incident.alert_id, incident_id=incident.incident_id):
                try:
                    executed = await self._advance(incident, policy)
                except Exception:
                    logger.exception("Escalation failed for incident %s", incident.incident_id)
                    result.failed_incidents.append(incident.incident_id)
                    continue
                finally:
                    self._in_flight.discard(incident.incident_id)

            if executed:
                result.levels_executed += 1
            if incident.incident_id not in self._incidents:
                result.incidents_dropped.append(incident.incident_id)

        return result

    async def _advance(self, incident: IncidentContext, policy: EscalationPolicy) -> bool:
        alert = await self.store.get(incident.alert_id)
        if alert is None or not alert.is_active:
            self._drop(incident, "alert no longer active")
            return False

        next_level = incident.escalation_level + 1
        if next_level >= len(policy.levels):
            self._drop(incident, "levels exhausted")
            return False

        executed = await self._execute_level(incident, policy, alert, next_level)
        self._settle(incident)
        return executed

    async def trigger(
        self, alert: SystemAlert, level: Optional[int] = None
    ) -> List[IncidentContext]:
        """Immediately execute the next (or a given) level of an alert's incidents.

        Returns:
            Incidents on which a level was executed.
        """
        triggered = []
        for incident in self.incidents_for(alert.id):
            if incident.incident_id in self._in_flight:
                logger.info("Incident %s is already escalating, skipping", incident.incident_id)
                continue
            policy = self.policies.get(incident.policy_id)
            if policy is None:
                continue
            target = level if level is not None else incident.escalation_level + 1
            if not 0 <= target < len(policy.levels):
                logger.warning(
                    "Policy %s has no level %d, skipping manual escalation",
                    policy.id, target,
                )
                continue

            self._in_flight.add(incident.incident_id)
            with LogContext(alert_id=alert.id, incident_id=incident.incident_id):
                logger.info("Manual escalation to level %d", target)
                try:
                    if await self._execute_level(incident, policy, alert, target):
                        triggered.append(incident)
                finally:
                    self._in_flight.discard(incident.incident_id)
                self._settle(incident)
        return triggered

    # ------------------------------------------------------------------
    # Level execution
    # ------------------------------------------------------------------

    async def _execute_level(
        self,
        incident: IncidentContext,
        policy: EscalationPolicy,
        alert: SystemAlert,
        index: int,
    ) -> bool:
        """Run one escalation level.

        Returns:
            False if the level's gates failed and nothing was sent.
        """
        level = policy.levels[index]
        incident.escalation_level = index

        if not gates_pass(level.conditions, alert):
            logger.info("Level %d of policy %s skipped by gating conditions", index, policy.id)
            incident.next_escalation_at = None
            return False

        await self._notify(incident, level, alert)

        if index + 1 < len(policy.levels):
            delay = policy.levels[index + 1].delay_minutes
            incident.next_escalation_at = self.clock.now() + timedelta(minutes=delay)
        else:
            incident.next_escalation_at = None
        return True

    async def _notify(
        self, incident: IncidentContext, level: EscalationLevel, alert: SystemAlert
    ) -> None:
        for channel in level.channels:
            if not channel.enabled or not channel.admits(alert):
                continue
            result = await self.dispatcher.dispatch(channel, alert, level.recipients)
            incident.notifications_sent.append(NotificationRecord(
                channel=channel.type_name,
                level=level.level,
                sent_at=self.clock.now(),
                success=result.success,
                recipients=list(level.recipients),
                error=result.error,
            ))
        logger.info(
            "Escalation level %d executed for alert %s",
            level.level, alert.id,
        )

    def _settle(self, incident: IncidentContext) -> bool:
        """Drop an incident that has no pending timer. Returns True if kept."""
        if incident.next_escalation_at is None:
            self._drop(incident, "no further levels scheduled")
            return False
        return incident.incident_id in self._incidents

    def _drop(self, incident: IncidentContext, reason: str) -> None:
        if self._incidents.pop(incident.incident_id, None) is not None:
            logger.info("Incident %s closed: %s", incident.incident_id, reason)
