"""Database connection and session management."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from upkeep.config import settings
from upkeep.models.base import Base

logger = logging.getLogger(__name__)

engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker] = None


async def init_db(database_url: Optional[str] = None, create_tables: bool = True):
    """Initialize database engine and create tables."""
    global engine, async_session_maker

    engine = create_async_engine(
        database_url or settings.DATABASE_URL,
        echo=settings.DEBUG,
        future=True,
        pool_pre_ping=True,
    )

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Create tables if they don't exist
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized")
    return async_session_maker


async def close_db():
    """Close database engine."""
    global engine, async_session_maker
    if engine:
        await engine.dispose()
        engine = None
    async_session_maker = None


async def get_db() -> AsyncIterator[AsyncSession]:
    """Get database session."""
    if async_session_maker is None:
        raise RuntimeError("Database not initialized; call init_db() first")
    async with async_session_maker() as session:
        yield session


@asynccontextmanager
async def session_scope(session_factory: Optional[async_sessionmaker] = None) -> AsyncIterator[AsyncSession]:
    """Open a session for background work, rolling back on any error."""
    factory = session_factory or async_session_maker
    if factory is None:
        raise RuntimeError("Database not initialized; call init_db() first")

    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
