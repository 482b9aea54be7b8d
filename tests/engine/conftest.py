"""Shared fixtures for engine unit tests.

Everything runs against the in-memory store; no database or Docker needed.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

from composa.engine.models.permissions import AccessContext
from composa.engine.services import Engine, build_memory_engine
from composa.engine.store.memory import MemoryStore

from .factories import Crm, seed_crm, seed_roles


@pytest.fixture
def store() -> MemoryStore:
    store = MemoryStore()
    seed_roles(store)
    return store


@pytest.fixture
def engine(store: MemoryStore) -> Engine:
    return build_memory_engine(store, default_page_size=10, max_page_size=100)


@pytest.fixture
async def admin(engine: Engine) -> AccessContext:
    return await engine.access("admin")


@pytest.fixture
async def viewer(engine: Engine) -> AccessContext:
    return await engine.access("viewer")


@pytest.fixture
async def member(engine: Engine) -> AccessContext:
    return await engine.access("member")


@pytest.fixture
async def crm(engine: Engine, admin: AccessContext) -> Crm:
    return await seed_crm(engine, admin)


@pytest.fixture
async def client(engine: Engine) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the app with the in-memory engine.

    The app lifespan does NOT run under ``ASGITransport``, so the engine is
    placed on ``app.state`` directly.
    """
    from composa.engine.app import app

    app.state.db_engine = None
    app.state.engine = engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.engine = None
