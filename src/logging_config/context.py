"""Logging Context Management.

Task-safe context using contextvars for binding request IDs and
alerting identifiers (rule, alert, incident, tick) to log entries.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


# Context variables for request-scoped data
_request_id_var: ContextVar[str] = ContextVar("request_id", default="")
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def generate_request_id() -> str:
    """Generate a unique request ID using UUID4."""
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Get the current request ID from context."""
    return _request_id_var.get()


def get_correlation_id() -> str:
    """Get the current correlation ID from context."""
    return _correlation_id_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all context variables as a dictionary for log binding."""
    ctx = {}
    req_id = _request_id_var.get()
    if req_id:
        ctx["request_id"] = req_id
    corr_id = _correlation_id_var.get()
    if corr_id:
        ctx["correlation_id"] = corr_id
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class RequestContext:
    """Context manager for request-scoped logging context.

    Binds request_id and correlation_id to all log entries within the
    context and restores the previous values on exit.

    Example:
        with RequestContext(request_id="abc-123"):
            logger.info("processing request")  # includes request_id
    """

    request_id: str = ""
    correlation_id: str = ""
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _tokens: list = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.request_id:
            self.request_id = generate_request_id()
        if not self.correlation_id:
            self.correlation_id = self.request_id

    def __enter__(self) -> "RequestContext":
        self._tokens = [
            (_request_id_var, _request_id_var.set(self.request_id)),
            (_correlation_id_var, _correlation_id_var.set(self.correlation_id)),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since context was created."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000


class LogContext:
    """Bind alerting identifiers to every record logged inside the block.

    Bindings nest: an inner context adds to, and on exit restores, the
    outer one. ``None`` values are not bound.

    Example:
        with LogContext(tick="evaluation-42"):
            with LogContext(rule_id="high_cpu_usage"):
                logger.info("evaluating")  # carries tick and rule_id
    """

    def __init__(
        self,
        rule_id: Optional[str] = None,
        alert_id: Optional[str] = None,
        incident_id: Optional[str] = None,
        tick: Optional[str] = None,
        **extra: Any,
    ):
        fields = {
            "rule_id": rule_id,
            "alert_id": alert_id,
            "incident_id": incident_id,
            "tick": tick,
            **extra,
        }
        self.fields = {k: v for k, v in fields.items() if v is not None}
        self._token = None

    def __enter__(self) -> "LogContext":
        current = _extra_context_var.get()
        self._token = _extra_context_var.set({**current, **self.fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _extra_context_var.reset(self._token)
            self._token = None
