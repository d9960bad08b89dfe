"""
Database configuration with SQLAlchemy 2.0 async support.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from gym_access.settings import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _engine_kwargs(database_url: str) -> dict:
    """Pool arguments; SQLite (tests, local tinkering) uses its own pool."""
    if database_url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "echo": settings.debug,
        "pool_pre_ping": True,  # Verify connections before using
    }


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine for the given URL."""
    return create_async_engine(database_url, **_engine_kwargs(database_url))


# Create async engine
engine = build_engine(settings.database_url)

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create tables that do not exist yet.

    Production schema is owned by Alembic; this is for local development
    and the test suite.
    """
    # Import all models to ensure they're registered
    from gym_access import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()


def upsert_insert(session: AsyncSession, model):
    """Dialect-specific INSERT supporting ``on_conflict_do_update``.

    PostgreSQL in production, SQLite in tests; both expose the same
    ``on_conflict_do_update(index_elements=..., set_=...)`` API.
    """
    if session.get_bind().dialect.name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        from sqlalchemy.dialects.postgresql import insert
    return insert(model)
