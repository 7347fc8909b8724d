"""Database engine and session factories for async access."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from src.db.base import Base
from src.settings import get_settings

_async_engine: Optional[AsyncEngine] = None


def build_async_engine(database_url: str, echo: bool = False, pool_size: int = 10) -> AsyncEngine:
    """Create an async engine. SQLite URLs get no connection pool sizing."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=pool_size,
        pool_pre_ping=True,
    )


def get_async_engine() -> AsyncEngine:
    """Get or create the async database engine."""
    global _async_engine
    if _async_engine is None:
        settings = get_settings()
        _async_engine = build_async_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
        )
    return _async_engine


def get_async_session_factory(engine: Optional[AsyncEngine] = None) -> async_sessionmaker:
    return async_sessionmaker(bind=engine or get_async_engine(), expire_on_commit=False)


async def create_tables(engine: Optional[AsyncEngine] = None) -> None:
    """Create all alerting tables that do not exist yet."""
    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _async_engine
    if _async_engine is not None:
        await _async_engine.dispose()
        _async_engine = None


# Convenience alias
AsyncSessionLocal = get_async_session_factory
