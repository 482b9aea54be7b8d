"""Shared test fixtures: a testcontainers PostgreSQL for the SQL store.

Integration tests use a real PostgreSQL container managed by
testcontainers-python. The container is session-scoped (started once per
test run) and migrated with the packaged Alembic config. Each test gets a
session factory over a fresh engine; every table is truncated afterwards.

Requires Docker to be available. Tests needing the container should be
marked with ``@pytest.mark.integration``.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from testcontainers.postgres import PostgresContainer

from composa.engine.db.engine import create_session_factory
from composa.engine.db.tables import Base
from composa.engine.settings import _get_settings_cached


def _set_env(key: str, value: str) -> None:
    """Set an env var and invalidate the settings cache."""
    os.environ[key] = value
    _get_settings_cached.cache_clear()


# ---------------------------------------------------------------------------
# Session-scoped: container, URL and schema migration
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def pg_container() -> Iterator[PostgresContainer]:
    """Start a PostgreSQL 17 container for the test session."""
    with PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="composa_test",
        driver="psycopg",
    ) as pg:
        yield pg


@pytest.fixture(scope="session")
def pg_url(pg_container: PostgresContainer) -> str:
    """PostgreSQL URL (psycopg3 dialect) with Alembic migrations applied."""
    url = pg_container.get_connection_url()
    _set_env("COMPOSA_DATABASE_URL", url)

    # Apply all migrations using the packaged alembic.ini (same config as CLI).
    from alembic import command
    from alembic.config import Config

    ini_path = Path(__file__).parent.parent / "composa" / "engine" / "alembic.ini"
    cfg = Config(str(ini_path))
    cfg.attributes["configure_logger"] = False
    command.upgrade(cfg, "head")

    return url


# ---------------------------------------------------------------------------
# Function-scoped: engine and session factory, tables truncated afterwards
# ---------------------------------------------------------------------------


@pytest.fixture
async def async_engine(pg_url: str) -> AsyncIterator[AsyncEngine]:
    """Async engine without pooling, so no connection outlives the test's event loop."""
    engine = create_async_engine(pg_url, poolclass=NullPool)
    yield engine
    tables = ", ".join(t.name for t in Base.metadata.sorted_tables)
    async with engine.begin() as conn:
        await conn.execute(text(f"TRUNCATE TABLE {tables} CASCADE"))
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(async_engine)
