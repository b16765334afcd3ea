"""
Database connection and session management.

Engines and session factories are built from settings by the caller and
passed into the services that need them; nothing is created at import time.
"""

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from festival_ingest.core.config import Settings

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database."""
    url = str(settings.database_url)
    if url.startswith("sqlite"):
        # No connection pool tuning for file/in-memory sqlite
        engine = create_async_engine(url, echo=settings.debug)
    else:
        engine = create_async_engine(
            url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            echo=settings.debug,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
    logger.info("Database engine created", dialect=engine.dialect.name)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with attributes kept loaded after commit."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    # Registers the mapped classes on Base.metadata
    from festival_ingest.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(lambda sync_conn: Base.metadata.create_all(sync_conn, checkfirst=True))
    logger.info("Database tables initialized")


async def close_db(engine: AsyncEngine) -> None:
    """Close database connections."""
    await engine.dispose()


async def check_database_health(engine: AsyncEngine) -> bool:
    """Check database connectivity and health"""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        return False
