"""
Later Sync - Database Connection
================================

Async SQLAlchemy setup for the local persistent store.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from later_sync.core.config import settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# ==========================================================================
# Engine Setup
# ==========================================================================

def create_engine(url: str | None = None) -> AsyncEngine:
    """
    Async engine for the SQLite store.

    An in-memory database lives on one shared connection, so it survives
    between sessions.
    """
    url = url or settings.DATABASE_URL
    options = {}
    if ":memory:" in url:
        options["poolclass"] = StaticPool
    return create_async_engine(
        url,
        echo=settings.DATABASE_ECHO,
        connect_args={"check_same_thread": False},
        **options,
    )


engine = create_engine()


# ==========================================================================
# Session Factory
# ==========================================================================

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_db_session(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions.

    Commits on success, rolls back and re-raises on any error.

    Usage:
        async with get_db_session() as session:
            ...
    """
    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ==========================================================================
# Lifecycle
# ==========================================================================

async def init_db(db_engine: AsyncEngine | None = None) -> None:
    """Initialize database (create tables if not exist)."""
    async with (db_engine or engine).begin() as conn:
        # Import all models to register them
        from later_sync.core import models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)


async def close_db(db_engine: AsyncEngine | None = None) -> None:
    """Close database connections."""
    await (db_engine or engine).dispose()
