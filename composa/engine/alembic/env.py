"""Alembic migration environment.

The URL comes from ComposaSettings (``COMPOSA_DATABASE_URL``) unless the
caller already set ``sqlalchemy.url`` on the config, as the test fixtures
do.  Migrations run synchronously on psycopg3.
"""

from __future__ import annotations

from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import create_engine, pool

from composa.engine.db.engine import psycopg_url
from composa.engine.db.tables import Base
from composa.engine.settings import ComposaSettings

# -- Alembic Config object ----------------------------------------------------
config = context.config
if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name)

# -- Target metadata for autogenerate ----------------------------------------
target_metadata = Base.metadata


def get_url() -> str:
    url = config.get_main_option("sqlalchemy.url") or ComposaSettings().database_url
    if not url:
        msg = "COMPOSA_DATABASE_URL is not set. Cannot run migrations."
        raise RuntimeError(msg)
    return psycopg_url(url)


def include_object(obj: Any, name: str | None, type_: str, reflected: bool, compare_to: Any) -> bool:
    """Skip tables that exist in the database but not in our metadata."""
    return not (type_ == "table" and reflected and compare_to is None)


def run_migrations_offline() -> None:
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(get_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
