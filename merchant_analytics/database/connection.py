"""
Database Connection Management

Async engine and session factory with SQLAlchemy 2.0. Analytics reads use
read-only sessions that are rolled back instead of committed; the settings
endpoints use ordinary read-write sessions.
"""

from contextlib import asynccontextmanager
import time
from typing import AsyncContextManager, AsyncGenerator, Optional

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from sqlalchemy import text

from merchant_analytics.config import get_settings

logger = structlog.get_logger(__name__)

# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


async def init_database(url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the database engine.

    Args:
        url: Database URL; defaults to the configured asyncpg URL

    Returns:
        AsyncEngine: The initialized database engine
    """
    global _engine, _async_session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    settings = get_settings()
    url = url or settings.database.async_url

    # Use NullPool for async engines; asyncpg handles its own pooling
    _engine = create_async_engine(
        url,
        echo=settings.database.echo,
        pool_pre_ping=True,
        poolclass=NullPool,
    )

    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    # Verify connection
    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info(
            "Database connection established",
            dialect=_engine.dialect.name,
            database=_engine.url.database,
        )
    except Exception as e:
        logger.error("Failed to connect to database", dialect=_engine.dialect.name, error=str(e))
        await close_database()
        raise

    return _engine


async def close_database() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database engine disposed")


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


@asynccontextmanager
async def get_db(read_only: bool = False) -> AsyncGenerator[AsyncSession, None]:
    """
    Get a database session.

    Commits on success and rolls back on error. A ``read_only`` session is
    always rolled back, so nothing an analytics query touches is written.

    Example:
        async with get_db(read_only=True) as db:
            result = await db.execute(query)
    """
    if _async_session_factory is None:
        logger.error("Database not initialized when get_db() called")
        raise RuntimeError("Database not initialized. Call init_database() first.")

    session = _async_session_factory()
    try:
        yield session
        if read_only:
            await session.rollback()
        else:
            await session.commit()
            logger.debug("Database session committed")
    except Exception as e:
        logger.error(
            "Database session error, rolling back",
            error=str(e),
            error_type=type(e).__name__,
            read_only=read_only,
        )
        await session.rollback()
        raise
    finally:
        await session.close()


def get_read_db() -> AsyncContextManager[AsyncSession]:
    """Read-only session; the default session factory for row sources."""
    return get_db(read_only=True)


async def get_db_dependency() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for read-write database sessions.

    Example:
        @router.put("/{merchant_id}")
        async def update(db: AsyncSession = Depends(get_db_dependency)):
            ...
    """
    async with get_db() as session:
        yield session


async def check_database_health() -> dict:
    """
    Check database health status.

    Returns:
        dict: Health status with latency and dialect information
    """
    try:
        start = time.perf_counter()
        async with get_read_db() as db:
            await db.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
            "dialect": get_engine().dialect.name,
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }
