"""Async SQLAlchemy engine and session factory.

psycopg3 serves both the async engine and Alembic's sync migrations from
the same ``postgresql+psycopg://`` URL; other PostgreSQL driver prefixes
are rewritten to it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

if TYPE_CHECKING:
    from composa.engine.settings import ComposaSettings

_DRIVER_PREFIXES = ("postgresql+asyncpg://", "postgresql+psycopg2://", "postgresql://", "postgres://")


def psycopg_url(database_url: str) -> str:
    for prefix in _DRIVER_PREFIXES:
        if database_url.startswith(prefix):
            return "postgresql+psycopg://" + database_url.removeprefix(prefix)
    return database_url


def create_engine(settings: ComposaSettings, **overrides: object) -> AsyncEngine:
    """Create the async engine from the ``COMPOSA_DB_*`` pool settings.

    ``pool_pre_ping`` survives server-side disconnects and ``pool_recycle``
    drops connections older than an hour.  *overrides* win over settings.
    """
    if not settings.database_url:
        msg = "COMPOSA_DATABASE_URL is not set"
        raise RuntimeError(msg)
    options: dict[str, object] = {
        "echo": settings.db_echo,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        **overrides,
    }
    return create_async_engine(psycopg_url(settings.database_url), **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with ``expire_on_commit=False``.

    Rows stay readable after commit without lazy loads, which async
    sessions cannot perform implicitly.
    """
    return async_sessionmaker(engine, expire_on_commit=False)
