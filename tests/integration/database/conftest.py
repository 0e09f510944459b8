"""PostgreSQL fixtures for tests that need the real table constraints.

Each test gets its own freshly migrated database on the server named by
``DATABASE_CONFIG__DATABASE_URL``. Tests are skipped when that server cannot
be reached.
"""

import asyncio
import uuid
from collections.abc import AsyncGenerator
from pathlib import Path

import asyncpg
import pytest
from alembic import command as alembic_command
from alembic.config import Config
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from taxform.core.config import get_settings

PROJECT_ROOT = Path(__file__).parents[3]


def _asyncpg_url(database_url: str) -> str:
    # asyncpg expects postgresql:// not postgresql+asyncpg://
    return database_url.replace("postgresql+asyncpg://", "postgresql://")


async def run_migrations_on_database(
    database_url: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Upgrade ``database_url`` to head with the project's Alembic scripts."""
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))

    # env.py reads the URL from the application settings
    monkeypatch.setenv("DATABASE_CONFIG__DATABASE_URL", database_url)
    get_settings.cache_clear()

    # env.py runs its own event loop, so it cannot share this one
    await asyncio.to_thread(alembic_command.upgrade, alembic_cfg, "head")


@pytest.fixture
async def pg_database_url(monkeypatch: pytest.MonkeyPatch) -> AsyncGenerator[str]:
    """Create a migrated throwaway database and drop it afterwards."""
    server_url = get_settings().database_config.database_url
    admin_url = _asyncpg_url(server_url)
    database_name = f"taxform_test_{uuid.uuid4().hex[:12]}"

    try:
        conn = await asyncpg.connect(admin_url, timeout=5)
    except (OSError, asyncpg.PostgresError) as exc:
        pytest.skip(f"PostgreSQL is not available: {exc}")
    try:
        await conn.execute(f'CREATE DATABASE "{database_name}"')
    finally:
        await conn.close()

    database_url = f"{server_url.rsplit('/', 1)[0]}/{database_name}"
    try:
        await run_migrations_on_database(database_url, monkeypatch)
        yield database_url
    finally:
        conn = await asyncpg.connect(admin_url, timeout=5)
        try:
            await conn.execute(
                "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                "WHERE datname = $1 AND pid <> pg_backend_pid()",
                database_name,
            )
            await conn.execute(f'DROP DATABASE IF EXISTS "{database_name}"')
        finally:
            await conn.close()


@pytest.fixture
async def pg_session_factory(
    pg_database_url: str,
) -> AsyncGenerator[async_sessionmaker[AsyncSession]]:
    """Session factory for the test database; each session owns a connection."""
    engine = create_async_engine(pg_database_url, poolclass=NullPool)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()
