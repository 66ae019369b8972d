"""Async SQLAlchemy session factory.

Provides a single async engine and a session factory. Use get_session()
as an async context manager for transactional blocks; it commits on
success, rolls back on exception.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from bolonyay.core.config import Settings
from bolonyay.models.database import Base


def create_engine(settings: Settings) -> AsyncEngine:
    """Build an async engine from application settings."""
    if settings.database_url.startswith("sqlite"):
        # An in-memory database exists per connection, so every session must share one.
        if ":memory:" in settings.database_url:
            return create_async_engine(
                settings.database_url,
                echo=settings.database_echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_async_engine(settings.database_url, echo=settings.database_echo)
    return create_async_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        echo=settings.database_echo,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to the given engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a transactional session; it commits on success, rolls back on error."""
    session = session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
