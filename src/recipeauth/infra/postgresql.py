"""Database session management."""

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, StaticPool
from sqlmodel import SQLModel

from recipeauth.app.config import get_settings
from recipeauth.core.logging_schema import LogEvent

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> dict[str, Any]:
    settings = get_settings()
    if url.startswith("sqlite"):
        if ":memory:" in url:
            # Single shared connection so the database survives across sessions
            return {
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            }
        # File databases get one connection per session; writers queue on the file lock
        return {"connect_args": {"timeout": 30}}
    return {
        "pool_size": settings.database.pool_size,
        "max_overflow": settings.database.max_overflow,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
        "poolclass": AsyncAdaptedQueuePool,
    }


async def init_db(url: str | None = None, create_tables: bool = True) -> AsyncEngine:
    """Initialize the engine and session factory.

    Args:
        url: Database URL. If None, uses DATABASE_URL from settings.
        create_tables: Create tables from SQLModel metadata.
    """
    global _engine, _session_factory

    settings = get_settings()
    url = url or str(settings.database.url)

    _engine = create_async_engine(
        url,
        echo=settings.database.echo,
        **_engine_options(url),
    )

    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_tables:
                await conn.run_sync(SQLModel.metadata.create_all)
        logger.info(
            "Database connected",
            extra={
                "event": LogEvent.DB_CONNECTED,
                "database": url.split("@")[-1],  # Hide credentials
            },
        )
    except Exception as e:
        logger.error(
            "Database connection failed",
            extra={
                "event": LogEvent.DB_ERROR,
                "error_type": type(e).__name__,
                "error": str(e),
            },
        )
        raise

    return _engine


async def close_db() -> None:
    global _engine, _session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database not initialized")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get session factory for creating new sessions.

    Used by the credential store, which opens one short session per call.
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized")
    return _session_factory
