"""Structured Logging & Request Tracing.

Provides structured JSON logging, request ID propagation, alerting
context binding, and performance timing for the alerting service.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import LogContext, RequestContext, generate_request_id
from src.logging_config.middleware import RequestTracingMiddleware
from src.logging_config.performance import PerformanceTimer, log_performance
from src.logging_config.setup import configure_logging

__all__ = [
    "LogContext",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "PerformanceTimer",
    "RequestContext",
    "RequestTracingMiddleware",
    "configure_logging",
    "generate_request_id",
    "log_performance",
]
