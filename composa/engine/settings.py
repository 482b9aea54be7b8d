"""Service configuration loaded from COMPOSA_* environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class ComposaSettings(BaseSettings):
    """Composa engine settings.

    All fields are read from environment variables with the ``COMPOSA_`` prefix.
    For example, ``COMPOSA_LOG_LEVEL=DEBUG`` maps to ``log_level``.
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPOSA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Storage ---------------------------------------------------------------
    store: Literal["memory", "sql"] = "sql"
    """Backend for schema, objects, permissions and views.

    ``memory`` keeps everything in-process (tests, demos); ``sql`` requires
    ``database_url``.
    """

    database_url: str | None = None
    """PostgreSQL connection string (``postgresql+psycopg://...``)."""

    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_echo: bool = False

    # -- Views -----------------------------------------------------------------
    default_page_size: int = 50
    max_page_size: int = 500

    # -- Server ----------------------------------------------------------------
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8000


def get_settings() -> ComposaSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to
    force a re-read after overriding env vars.
    """
    return _get_settings_cached()


def _get_settings_cached() -> ComposaSettings:
    """Inner function wrapped by lru_cache (allows type-safe cache_clear)."""
    return ComposaSettings()


from functools import lru_cache  # noqa: E402

_get_settings_cached = lru_cache(maxsize=1)(_get_settings_cached)
