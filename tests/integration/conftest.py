"""Fixtures for tests against a real PostgreSQL.

The database comes from LAWKITA_TEST_DATABASE_URL, falling back to the
configured database. The migration is applied once per test and every
table is emptied first. Tests are skipped when PostgreSQL is unreachable.

Run with: pytest tests/integration -v
"""

import importlib.util
import os
from pathlib import Path

import pytest
import pytest_asyncio
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from lawkita.config import get_settings

MIGRATIONS = Path(__file__).resolve().parents[2] / "migrations" / "versions"

TABLES = (
    "case_media_references",
    "case_timeline",
    "case_lawyers",
    "case_aliases",
    "cases",
    "lawyers",
    "scraping_logs",
)


def _apply_migrations(connection) -> None:
    context = MigrationContext.configure(connection)
    for path in sorted(MIGRATIONS.glob("[0-9]*.py")):
        spec = importlib.util.spec_from_file_location(f"lawkita_migration_{path.stem}", path)
        migration = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(migration)
        with Operations.context(context):
            migration.upgrade()


@pytest_asyncio.fixture
async def session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory over a freshly migrated, empty database."""
    url = os.environ.get("LAWKITA_TEST_DATABASE_URL") or get_settings().database_url
    engine = create_async_engine(url)

    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
    except Exception as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL not available: {e}")

    async with engine.begin() as connection:
        await connection.run_sync(_apply_migrations)
        await connection.execute(text(f"TRUNCATE {', '.join(TABLES)} CASCADE"))

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
