"""Alerting HTTP API.

REST surface over the alerting engine: alert queries and lifecycle
actions, rule and escalation policy management, manual escalation,
channel tests and metric ingest.

Example:
    from src.api import create_app
    app = create_app()
"""

from src.api.config import APIConfig, DEFAULT_API_CONFIG
from src.api.models import (
    AlertListResponse,
    AlertResponse,
    BulkActionRequest,
    BulkActionResponse,
    ChannelTestRequest,
    ChannelTestResponse,
    EscalationRequest,
    EscalationResponse,
    HealthResponse,
    ManualAlertRequest,
    MetricSampleRequest,
    PolicyCreateRequest,
    RuleCreateRequest,
    RuleToggleRequest,
    StatisticsResponse,
    StatusResponse,
    TransitionRequest,
)
from src.api.app import build_engine, create_app

__all__ = [
    # Config
    "APIConfig",
    "DEFAULT_API_CONFIG",
    # Models
    "AlertListResponse",
    "AlertResponse",
    "BulkActionRequest",
    "BulkActionResponse",
    "ChannelTestRequest",
    "ChannelTestResponse",
    "EscalationRequest",
    "EscalationResponse",
    "HealthResponse",
    "ManualAlertRequest",
    "MetricSampleRequest",
    "PolicyCreateRequest",
    "RuleCreateRequest",
    "RuleToggleRequest",
    "StatisticsResponse",
    "StatusResponse",
    "TransitionRequest",
    # App
    "build_engine",
    "create_app",
]
