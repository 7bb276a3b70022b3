"""
FastAPI dependency injection for database sessions.
Provides database session dependencies for API endpoints.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from database.session import _get_async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides an async database session.

    Usage:
        @router.get("/rounds/current")
        async def current_round(db: AsyncSession = Depends(get_db)):
            ...

    Yields:
        AsyncSession: SQLAlchemy async database session
    """
    factory = _get_async_session_factory()
    session = factory()
    try:
        yield session
    finally:
        await session.close()
