"""
Database engine and session management.
Provides reusable async session handling for API, Celery and scheduler contexts.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config import settings
from database.base import Base

logger = logging.getLogger(__name__)

# Async engine and session factory
_async_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_kwargs(url: str) -> dict:
    """Pool options are only meaningful for server databases."""
    if url.startswith("sqlite"):
        # Wait for the write lock instead of failing right away
        return {"connect_args": {"timeout": 30}}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


def _serialize_sqlite_transactions(engine: AsyncEngine) -> None:
    """
    SQLite has no row locks and ignores FOR UPDATE. Taking the database write
    lock when a transaction begins makes every transaction serialize instead,
    so the locked read-check-write sections behave as they do on PostgreSQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Leave BEGIN to SQLAlchemy
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def configure_engine(url: Optional[str] = None) -> AsyncEngine:
    """
    Create (or replace) the process-wide engine and session factory.

    Called implicitly on first use; tests call it with a SQLite URL.
    """
    global _async_engine, _async_session_factory
    url = url or settings.database_url
    _async_engine = create_async_engine(url, **_engine_kwargs(url))
    if url.startswith("sqlite"):
        _serialize_sqlite_transactions(_async_engine)
    _async_session_factory = async_sessionmaker(
        bind=_async_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    return _async_engine


def _get_async_engine() -> AsyncEngine:
    """Get or create async engine."""
    if _async_engine is None:
        configure_engine()
    return _async_engine


def _get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create async session factory."""
    if _async_session_factory is None:
        configure_engine()
    return _async_session_factory


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions outside FastAPI.

    Usage:
        async with get_db_session() as db:
            result = await db.execute(select(Round))
            await db.commit()

    Yields:
        AsyncSession: SQLAlchemy async database session
    """
    factory = _get_async_session_factory()
    session = factory()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db() -> None:
    """Create all tables that do not exist yet."""
    # Import models so they register on the metadata
    import models  # noqa: F401

    async with _get_async_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")


async def close_db() -> None:
    """Dispose of the engine and its pooled connections."""
    global _async_engine, _async_session_factory
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_session_factory = None


async def check_db_connection() -> bool:
    """Return True when the database answers a trivial query."""
    try:
        async with _get_async_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
