"""API Error Configuration.

Defines error codes, severity levels, and configuration for
structured error handling across the alerting API.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict


class ErrorCode(Enum):
    """Standardized error codes for API responses."""

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_RULE = "INVALID_RULE"
    INVALID_POLICY = "INVALID_POLICY"
    INVALID_CHANNEL = "INVALID_CHANNEL"
    INVALID_TIME_RANGE = "INVALID_TIME_RANGE"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"

    # Not found errors (404)
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    ALERT_NOT_FOUND = "ALERT_NOT_FOUND"
    RULE_NOT_FOUND = "RULE_NOT_FOUND"
    POLICY_NOT_FOUND = "POLICY_NOT_FOUND"

    # Conflict errors (409)
    INVALID_TRANSITION = "INVALID_TRANSITION"
    DUPLICATE_ACTIVE_ALERT = "DUPLICATE_ACTIVE_ALERT"

    # Server errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    DISPATCH_ERROR = "DISPATCH_ERROR"

    # Upstream errors (502)
    METRIC_FETCH_ERROR = "METRIC_FETCH_ERROR"

    # Service unavailable (503)
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class ErrorSeverity(Enum):
    """Severity levels for error logging."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Map error codes to HTTP status codes
ERROR_STATUS_MAP: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_RULE: 400,
    ErrorCode.INVALID_POLICY: 400,
    ErrorCode.INVALID_CHANNEL: 400,
    ErrorCode.INVALID_TIME_RANGE: 400,
    ErrorCode.MISSING_REQUIRED_FIELD: 400,
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.ALERT_NOT_FOUND: 404,
    ErrorCode.RULE_NOT_FOUND: 404,
    ErrorCode.POLICY_NOT_FOUND: 404,
    ErrorCode.INVALID_TRANSITION: 409,
    ErrorCode.DUPLICATE_ACTIVE_ALERT: 409,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.DISPATCH_ERROR: 500,
    ErrorCode.METRIC_FETCH_ERROR: 502,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
}

# Map error codes to severity
ERROR_SEVERITY_MAP: Dict[ErrorCode, ErrorSeverity] = {
    ErrorCode.VALIDATION_ERROR: ErrorSeverity.LOW,
    ErrorCode.INVALID_RULE: ErrorSeverity.LOW,
    ErrorCode.INVALID_POLICY: ErrorSeverity.LOW,
    ErrorCode.INVALID_CHANNEL: ErrorSeverity.MEDIUM,
    ErrorCode.INVALID_TIME_RANGE: ErrorSeverity.LOW,
    ErrorCode.MISSING_REQUIRED_FIELD: ErrorSeverity.LOW,
    ErrorCode.RESOURCE_NOT_FOUND: ErrorSeverity.LOW,
    ErrorCode.ALERT_NOT_FOUND: ErrorSeverity.LOW,
    ErrorCode.RULE_NOT_FOUND: ErrorSeverity.LOW,
    ErrorCode.POLICY_NOT_FOUND: ErrorSeverity.LOW,
    ErrorCode.INVALID_TRANSITION: ErrorSeverity.MEDIUM,
    ErrorCode.DUPLICATE_ACTIVE_ALERT: ErrorSeverity.MEDIUM,
    ErrorCode.INTERNAL_ERROR: ErrorSeverity.CRITICAL,
    ErrorCode.DATABASE_ERROR: ErrorSeverity.CRITICAL,
    ErrorCode.DISPATCH_ERROR: ErrorSeverity.HIGH,
    ErrorCode.METRIC_FETCH_ERROR: ErrorSeverity.HIGH,
    ErrorCode.SERVICE_UNAVAILABLE: ErrorSeverity.HIGH,
}


@dataclass
class ErrorConfig:
    """Configuration for API error handling."""

    include_stack_trace: bool = False
    include_request_id: bool = True
    log_all_errors: bool = True
    max_error_detail_length: int = 1000
    suppress_internal_details: bool = True
    custom_error_messages: Dict[str, str] = field(default_factory=dict)


DEFAULT_ERROR_CONFIG = ErrorConfig()
