"""Database engine and session helpers for the SQL store backend."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from transit_search.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from transit_search.config import Settings

logger = get_logger(__name__)


def create_engine(settings: Settings) -> AsyncEngine:
    """Create an async engine sized for concurrent chunk writes."""
    return create_async_engine(
        str(settings.database_url),
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=settings.store_write_max_concurrency,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session context manager that always closes the session."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def check_database_connection(engine: AsyncEngine) -> bool:
    """Check if database is reachable."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Database connection check failed", error=str(exc))
        return False
