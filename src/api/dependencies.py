"""FastAPI Dependencies.

Provides the alerting engine held on ``app.state`` to request handlers.
"""

import logging

from fastapi import Request

from src.alerting.engine import AlertingEngine
from src.api_errors.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)


def get_engine(request: Request) -> AlertingEngine:
    """Return the engine built during application startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        logger.error("Alerting engine requested before startup completed")
        raise ServiceUnavailableError("Alerting engine is not initialized")
    return engine
