"""Alerting endpoints.

Alert queries and lifecycle actions, rule and escalation policy
management, manual escalation and channel tests. Static paths are
declared before ``/{alert_id}`` so they are not captured by it.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.alerting.config import AlertSeverity, AlertStatus, TimeRange
from src.alerting.engine import AlertingEngine, BulkOutcome
from src.alerting.models import SystemAlert
from src.api.config import DEFAULT_API_CONFIG
from src.api.dependencies import get_engine
from src.api.models import (
    AlertListResponse,
    AlertResponse,
    BulkActionRequest,
    BulkActionResponse,
    BulkActionResult,
    ChannelTestRequest,
    ChannelTestResponse,
    EscalationRequest,
    EscalationResponse,
    ManualAlertRequest,
    PolicyCreateRequest,
    RuleCreateRequest,
    RuleToggleRequest,
    StatisticsResponse,
    StatusResponse,
    TransitionRequest,
)
from src.api_errors.config import ErrorCode
from src.api_errors.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/alerts", tags=["Alerts"])


def _alert_response(alert: SystemAlert) -> AlertResponse:
    return AlertResponse(**alert.to_dict())


def _alert_list(alerts: list[SystemAlert]) -> AlertListResponse:
    return AlertListResponse(alerts=[_alert_response(a) for a in alerts], count=len(alerts))


def _bulk_response(outcomes: list[BulkOutcome]) -> BulkActionResponse:
    succeeded = sum(1 for o in outcomes if o.success)
    return BulkActionResponse(
        results=[BulkActionResult(**o.to_dict()) for o in outcomes],
        succeeded=succeeded,
        failed=len(outcomes) - succeeded,
    )


# ── Queries ──────────────────────────────────────────────────────────


@router.get("", response_model=AlertListResponse)
async def list_alerts(
    status: Optional[AlertStatus] = None,
    severity: Optional[AlertSeverity] = None,
    service: Optional[str] = None,
    limit: int = Query(
        default=DEFAULT_API_CONFIG.default_page_size, ge=1, le=DEFAULT_API_CONFIG.max_page_size
    ),
    engine: AlertingEngine = Depends(get_engine),
):
    """List alerts, newest first, optionally filtered."""
    alerts = await engine.get_alerts(
        status=status, severity=severity, service=service, limit=limit
    )
    return _alert_list(alerts)


@router.get("/active", response_model=AlertListResponse)
async def list_active_alerts(engine: AlertingEngine = Depends(get_engine)):
    return _alert_list(await engine.get_active_alerts())


@router.get("/statistics", response_model=StatisticsResponse)
async def alert_statistics(
    time_range: str = "day",
    engine: AlertingEngine = Depends(get_engine),
):
    """Alert counts by severity and status over ``hour|day|week|month``."""
    try:
        parsed = TimeRange(time_range)
    except ValueError:
        raise ValidationError(
            f"Unknown time range '{time_range}'",
            error_code=ErrorCode.INVALID_TIME_RANGE,
            field="time_range",
        )
    stats = await engine.get_alert_statistics(parsed)
    return StatisticsResponse(**stats.to_dict())


@router.get("/status", response_model=StatusResponse)
async def engine_status(engine: AlertingEngine = Depends(get_engine)):
    status = await engine.get_status()
    return StatusResponse(**status.to_dict())


# ── Rules ────────────────────────────────────────────────────────────


@router.get("/rules")
async def list_rules(engine: AlertingEngine = Depends(get_engine)):
    return [rule.to_dict() for rule in engine.get_alert_rules()]


@router.post("/rules", status_code=201)
async def add_rule(body: RuleCreateRequest, engine: AlertingEngine = Depends(get_engine)):
    """Register a rule, replacing any rule with the same id."""
    rule = body.to_domain()
    engine.add_alert_rule(rule)
    return rule.to_dict()


@router.delete("/rules/{rule_id}")
async def remove_rule(rule_id: str, engine: AlertingEngine = Depends(get_engine)):
    if not engine.remove_alert_rule(rule_id):
        raise NotFoundError(
            f"Rule {rule_id} not found",
            error_code=ErrorCode.RULE_NOT_FOUND,
            resource_type="rule",
            resource_id=rule_id,
        )
    return {"rule_id": rule_id, "removed": True}


@router.post("/rules/{rule_id}/toggle")
async def toggle_rule(
    rule_id: str,
    body: RuleToggleRequest,
    engine: AlertingEngine = Depends(get_engine),
):
    if not engine.toggle_alert_rule(rule_id, body.enabled):
        raise NotFoundError(
            f"Rule {rule_id} not found",
            error_code=ErrorCode.RULE_NOT_FOUND,
            resource_type="rule",
            resource_id=rule_id,
        )
    return {"rule_id": rule_id, "enabled": body.enabled}


# ── Escalation policies ──────────────────────────────────────────────


@router.get("/policies")
async def list_policies(engine: AlertingEngine = Depends(get_engine)):
    return [policy.to_dict() for policy in engine.get_escalation_policies()]


@router.post("/policies", status_code=201)
async def add_policy(body: PolicyCreateRequest, engine: AlertingEngine = Depends(get_engine)):
    """Register a policy, replacing any policy with the same id."""
    policy = body.to_domain()
    engine.add_escalation_policy(policy)
    return policy.to_dict()


@router.delete("/policies/{policy_id}")
async def remove_policy(policy_id: str, engine: AlertingEngine = Depends(get_engine)):
    if not engine.remove_escalation_policy(policy_id):
        raise NotFoundError(
            f"Policy {policy_id} not found",
            error_code=ErrorCode.POLICY_NOT_FOUND,
            resource_type="policy",
            resource_id=policy_id,
        )
    return {"policy_id": policy_id, "removed": True}


# ── Manual alerts, bulk actions, channel tests ───────────────────────


@router.post("/manual", response_model=AlertResponse, status_code=201)
async def create_manual_alert(
    body: ManualAlertRequest,
    engine: AlertingEngine = Depends(get_engine),
):
    alert = await engine.create_manual_alert(
        title=body.title,
        description=body.description,
        severity=body.severity,
        service=body.service,
        alert_type=body.alert_type,
        alert_data=body.alert_data,
    )
    return _alert_response(alert)


@router.post("/bulk/acknowledge", response_model=BulkActionResponse)
async def bulk_acknowledge(body: BulkActionRequest, engine: AlertingEngine = Depends(get_engine)):
    outcomes = await engine.bulk_acknowledge(body.alert_ids, body.user, body.notes)
    return _bulk_response(outcomes)


@router.post("/bulk/resolve", response_model=BulkActionResponse)
async def bulk_resolve(body: BulkActionRequest, engine: AlertingEngine = Depends(get_engine)):
    outcomes = await engine.bulk_resolve(body.alert_ids, body.user, body.notes)
    return _bulk_response(outcomes)


@router.post("/channels/test", response_model=ChannelTestResponse)
async def test_channel(body: ChannelTestRequest, engine: AlertingEngine = Depends(get_engine)):
    """Deliver a synthetic alert through one channel.

    Delivery failures are reported in the body, not as an error status.
    """
    result = await engine.test_notification_channel(body.channel.to_domain(), body.recipients)
    return ChannelTestResponse(**result.to_dict())


# ── Single alert ─────────────────────────────────────────────────────


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(alert_id: str, engine: AlertingEngine = Depends(get_engine)):
    alert = await engine.get_alert(alert_id)
    if alert is None:
        raise NotFoundError(
            f"Alert {alert_id} not found",
            error_code=ErrorCode.ALERT_NOT_FOUND,
            resource_type="alert",
            resource_id=alert_id,
        )
    return _alert_response(alert)


@router.post("/{alert_id}/acknowledge", response_model=AlertResponse)
async def acknowledge_alert(
    alert_id: str,
    body: TransitionRequest,
    engine: AlertingEngine = Depends(get_engine),
):
    alert = await engine.transition(alert_id, "acknowledge", body.user, body.notes)
    return _alert_response(alert)


@router.post("/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(
    alert_id: str,
    body: TransitionRequest,
    engine: AlertingEngine = Depends(get_engine),
):
    alert = await engine.transition(alert_id, "resolve", body.user, body.notes)
    return _alert_response(alert)


@router.post("/{alert_id}/dismiss", response_model=AlertResponse)
async def dismiss_alert(
    alert_id: str,
    body: TransitionRequest,
    engine: AlertingEngine = Depends(get_engine),
):
    alert = await engine.transition(alert_id, "dismiss", body.user, body.notes)
    return _alert_response(alert)


@router.post("/{alert_id}/escalate", response_model=EscalationResponse)
async def escalate_alert(
    alert_id: str,
    body: Optional[EscalationRequest] = None,
    engine: AlertingEngine = Depends(get_engine),
):
    """Run the next (or a given) escalation level now."""
    level = body.level if body else None
    incidents = await engine.trigger_manual_escalation(alert_id, level)
    return EscalationResponse(
        alert_id=alert_id,
        incidents=[incident.to_dict() for incident in incidents],
    )
