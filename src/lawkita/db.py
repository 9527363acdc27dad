"""PostgreSQL access for LawKita.

Case, lawyer and run-log stores share one lazily created async engine.
Stores take a session factory so tests and scripts can point them at
another database.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import Settings, get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """Build an engine sized for the pipeline's worker count."""
    settings = settings or get_settings()
    return create_async_engine(
        settings.database_url,
        echo=settings.api_debug,
        # One connection per persistence worker plus headroom for the API
        pool_size=max(settings.pipeline_max_workers, 5),
        max_overflow=10,
        pool_pre_ping=True,
    )


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Shared session factory; sessions do not expire objects on commit."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Session that commits on success and rolls back on error.

    Usage:
        async with get_db_session() as session:
            await session.execute(text("SELECT 1"))
    """
    session = get_session_factory()()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def ping() -> None:
    """Round-trip to PostgreSQL; raises if the database is unreachable."""
    async with get_db_session() as session:
        await session.execute(text("SELECT 1"))


async def close_all_connections() -> None:
    """Dispose of the engine on shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
