"""Database package for the alerting service."""

from src.db.base import Base
from src.db.engine import (
    AsyncSessionLocal,
    build_async_engine,
    create_tables,
    dispose_engine,
    get_async_engine,
)
from src.db.models import HealthMetricRecord, SystemAlertRecord
from src.db.stores import SqlAlertStore, SqlMetricSource

__all__ = [
    "Base",
    "AsyncSessionLocal",
    "build_async_engine",
    "create_tables",
    "dispose_engine",
    "get_async_engine",
    "HealthMetricRecord",
    "SystemAlertRecord",
    "SqlAlertStore",
    "SqlMetricSource",
]
