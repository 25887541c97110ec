"""
Database session management.

This module provides utilities for creating and managing database sessions
using async SQLAlchemy (asyncpg in production, aiosqlite for local runs).
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from formplay.core.config import settings
from formplay.core.logging import logger


def _engine_options() -> Dict[str, Any]:
    if settings.database.is_sqlite:
        # A single shared connection keeps an in-memory database alive.
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    return {
        "pool_size": settings.database.pool_size,
        "max_overflow": settings.database.max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": settings.database.pool_recycle,
    }


# Create async engine
engine = create_async_engine(
    settings.database.url,
    echo=settings.debug,
    **_engine_options(),
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a database session.

    This function is used as a dependency in FastAPI endpoints to provide
    a database session. It ensures the session is properly closed after use.

    Yields:
        AsyncSession: Database session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database session error: {e}")
            await session.rollback()
            raise
        finally:
            await session.close()
