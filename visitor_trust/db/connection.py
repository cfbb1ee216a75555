"""
Async database engine and session factory for the signal store

One engine per process; each store operation opens its own short-lived
session from the factory, so concurrent scorers never share a session.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..config import Settings, get_settings
from ..models.base import Base

logger = logging.getLogger(__name__)


def create_engine(settings: Optional[Settings] = None) -> AsyncEngine:
    """
    Create an async engine from settings

    Pool sizing only applies to server databases; SQLite uses its own pool.

    Args:
        settings: settings object (defaults to get_settings())

    Returns:
        AsyncEngine: database engine
    """
    settings = settings or get_settings()
    url = settings.DATABASE_URL

    logger.info(
        f"Creating signal store engine: {url.split('@')[1] if '@' in url else url}"
    )

    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.SQL_ECHO)

    return create_async_engine(
        url,
        echo=settings.SQL_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        pool_recycle=settings.DB_POOL_RECYCLE,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create all signal-store tables (idempotent)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Signal store tables ready")


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("Signal store engine disposed")
