# leadsync/db/session.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from leadsync.core.config import settings
from leadsync.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

# Global engine instance
engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker[AsyncSession]] = None


def create_database_engine() -> AsyncEngine:
    """Create and configure the async database engine."""
    global engine, AsyncSessionLocal

    if engine is not None:
        return engine

    if settings.is_testing:
        # Use NullPool for tests to ensure clean state
        engine = create_async_engine(
            settings.database_url,
            poolclass=NullPool,
            echo=settings.debug,
        )
    else:
        engine = create_async_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            pool_pre_ping=True,
            echo=settings.debug,
        )

    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info(
        "database.engine.created",
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        testing=settings.is_testing,
    )

    return engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if AsyncSessionLocal is None:
        create_database_engine()
    return AsyncSessionLocal


async def dispose_engine() -> None:
    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
        engine = None
        AsyncSessionLocal = None
        logger.info("database.connection_closed")


async def create_all() -> None:
    """Create tables for all registered models."""
    from leadsync.db.base import Base
    import leadsync.models  # noqa: F401

    async with create_database_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database.tables_created")


async def health_check() -> dict:
    """Check database health."""
    try:
        async with create_database_engine().connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            row = result.fetchone()
            return {"status": "healthy" if row and row[0] == 1 else "unhealthy"}
    except Exception as e:
        logger.error("database.health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}
