"""
Database Connection Module
Async SQLAlchemy engine and session factory for the settings table.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from delivery_engine.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=5,  # Settings reads are small and cached; a small pool is enough
    max_overflow=10,
    pool_pre_ping=True,
)


def make_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    """Session factory whose objects stay readable after commit."""
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


async_session_maker = make_session_maker(engine)


# Base class for all our models
class Base(DeclarativeBase):
    pass


async def init_db(bind: AsyncEngine = engine) -> None:
    """
    Create the settings table if it does not exist.
    Called once at application startup.
    """
    # Register models on Base.metadata
    import delivery_engine.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database tables ready ({bind.dialect.name})")
