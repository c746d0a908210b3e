"""Async engine and session management for vehicles, history and predictions."""

import logging
from typing import AsyncGenerator

from automatenance.config import settings
from automatenance.models import Base
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)

engine = None
async_session_maker = None


async def init_db(database_url: str = None):
    """Create the engine and session factory, then ensure tables exist.

    Raises:
        RuntimeError: If no database URL is configured
    """
    global engine, async_session_maker

    url = database_url or settings.DATABASE_URL
    if not url:
        raise RuntimeError("DATABASE_URL is not configured")

    engine = create_async_engine(
        url,
        echo=settings.DEBUG,
        future=True,
        pool_pre_ping=True,
    )

    # Predictions are replaced per vehicle and read back after commit
    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"Database initialized ({len(Base.metadata.tables)} tables)")


async def close_db():
    """Dispose of the engine."""
    global engine, async_session_maker
    if engine:
        await engine.dispose()
        engine = None
        async_session_maker = None
        logger.info("Database engine disposed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session for one request."""
    if async_session_maker is None:
        raise RuntimeError("Database not initialized - call init_db() first")

    async with async_session_maker() as session:
        yield session
