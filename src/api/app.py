"""FastAPI Application Factory.

Creates and configures the alerting API with its middleware stack
(security headers, request tracing, error handling, CORS) and a
lifespan that builds the alerting engine from settings and runs its
evaluation and escalation loops.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from src.alerting.channels.dispatcher import build_dispatcher
from src.alerting.config import AlertingConfig
from src.alerting.engine import AlertingEngine
from src.alerting.store import InMemoryAlertStore, InMemoryMetricSource
from src.api.config import APIConfig, DEFAULT_API_CONFIG
from src.api.models import HealthResponse
from src.api.routes import alerts as alert_routes
from src.api.routes import metrics as metric_routes
from src.api_errors.handlers import register_exception_handlers
from src.api_errors.middleware import ErrorHandlingMiddleware
from src.db.engine import build_async_engine, create_tables, get_async_session_factory
from src.db.stores import SqlAlertStore, SqlMetricSource
from src.logging_config import LogFormat, LoggingConfig, LogLevel, configure_logging
from src.logging_config.middleware import RequestTracingMiddleware
from src.settings import Settings, get_settings

logger = logging.getLogger(__name__)


# ── Security Headers Middleware ───────────────────────────────────────


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to all HTTP responses."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if os.environ.get("SKC_ENABLE_HSTS", "").lower() == "true":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response


# ── Engine wiring ────────────────────────────────────────────────────


def alerting_config_from_settings(settings: Settings) -> AlertingConfig:
    return AlertingConfig(
        evaluation_interval_seconds=settings.evaluation_interval_seconds,
        escalation_interval_seconds=settings.escalation_interval_seconds,
        trend_sample_count=settings.trend_sample_count,
        http_timeout_seconds=settings.http_timeout_seconds,
        load_default_rules=settings.load_default_rules,
        load_default_policies=settings.load_default_policies,
    )


async def build_engine(settings: Settings, app: Optional[FastAPI] = None) -> AlertingEngine:
    """Build an engine backed by SQL or in-memory stores per settings."""
    if settings.use_database:
        db_engine = build_async_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
        )
        await create_tables(db_engine)
        sessions = get_async_session_factory(db_engine)
        store, source = SqlAlertStore(sessions), SqlMetricSource(sessions)
        if app is not None:
            app.state.db_engine = db_engine
        logger.info("Alert store: database")
    else:
        store, source = InMemoryAlertStore(), InMemoryMetricSource(settings.metric_retention_minutes)
        logger.info("Alert store: in-memory")

    return AlertingEngine(
        metric_source=source,
        store=store,
        dispatcher=build_dispatcher(settings),
        config=alerting_config_from_settings(settings),
    )


# ── Lifespan (startup / shutdown) ────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: logging, engine and loops."""
    settings: Settings = app.state.settings

    # ── Startup ──
    configure_logging(LoggingConfig(
        level=LogLevel(settings.log_level.upper()),
        format=LogFormat(settings.log_format.lower()),
    ))
    logger.info("Structured logging initialized")

    if getattr(app.state, "engine", None) is None:
        app.state.engine = await build_engine(settings, app)
    engine: AlertingEngine = app.state.engine

    if settings.autostart_loops:
        await engine.start()

    logger.info("SKC alerting API starting up")
    yield

    # ── Shutdown ──
    await engine.stop()
    db_engine = getattr(app.state, "db_engine", None)
    if db_engine is not None:
        await db_engine.dispose()
    logger.info("SKC alerting API shutting down")


# ── App Factory ──────────────────────────────────────────────────────


def create_app(
    config: Optional[APIConfig] = None,
    settings: Optional[Settings] = None,
    engine: Optional[AlertingEngine] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Middleware stack (outermost → innermost):
        SecurityHeaders → RequestTracing → ErrorHandling → CORS → App

    Args:
        config: API configuration. Uses defaults if not provided.
        settings: Service settings. Loaded from the environment if not provided.
        engine: Prebuilt engine. When omitted the lifespan builds one.

    Returns:
        Configured FastAPI application.
    """
    config = config or DEFAULT_API_CONFIG
    settings = settings or get_settings()

    app = FastAPI(
        title=config.title,
        version=config.version,
        description=config.description,
        docs_url=config.docs_url,
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine

    # ── Middleware stack ──────────────────────────────────────────
    # add_middleware prepends, so order here is innermost-first.

    cors_origins = os.environ.get("SKC_CORS_ORIGINS", "").split(",")
    cors_origins = [o.strip() for o in cors_origins if o.strip()] or config.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=config.cors_methods,
        allow_headers=config.cors_headers,
    )
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestTracingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    register_exception_handlers(app)

    # ── Health check ─────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    async def health():
        components = {}

        engine = getattr(app.state, "engine", None)
        if engine is None:
            components["engine"] = "unavailable"
        else:
            components["engine"] = "ok" if engine.is_running else "stopped"

        db_engine = getattr(app.state, "db_engine", None)
        if db_engine is not None:
            try:
                async with db_engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
                components["database"] = "ok"
            except Exception as e:
                components["database"] = f"error: {e}"

        overall = "ok" if all(v == "ok" for v in components.values()) else "degraded"
        return HealthResponse(status=overall, version=config.version, components=components)

    # ── Route modules ────────────────────────────────────────────

    app.include_router(alert_routes.router, prefix=config.prefix)
    app.include_router(metric_routes.router, prefix=config.prefix)

    logger.info("SKC alerting API v%s initialized", config.version)
    return app
