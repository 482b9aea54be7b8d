"""Engine assembly.

There are no module-level singletons.  :func:`build_engine` wires stores,
registry, managers and query engines together and returns them as one
:class:`Engine`; the FastAPI lifespan calls it once and keeps the result on
``app.state``, tests call :func:`build_memory_engine` directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from composa.engine.managers.objects import ObjectManager
from composa.engine.managers.schema import SchemaRegistry
from composa.engine.managers.views import ViewManager
from composa.engine.permissions import load_access_context
from composa.engine.query.aggregation import AggregationEngine
from composa.engine.query.evaluator import ViewEngine
from composa.engine.store.memory import MemoryStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from composa.engine.models.permissions import AccessContext
    from composa.engine.settings import ComposaSettings
    from composa.engine.store.base import ObjectStore, PermissionSource, SchemaStore, ViewStore


@dataclass
class Engine:
    schema: SchemaRegistry
    objects: ObjectManager
    views: ViewManager
    query: ViewEngine
    aggregation: AggregationEngine
    permissions: PermissionSource

    async def access(self, principal_id: str | None) -> AccessContext:
        """Load the access context of *principal_id* (``UnauthorizedError`` if empty)."""
        return await load_access_context(self.permissions, principal_id)


def assemble_engine(
    *,
    schema_store: SchemaStore,
    object_store: ObjectStore,
    permission_source: PermissionSource,
    view_store: ViewStore,
    default_page_size: int = 50,
    max_page_size: int = 500,
) -> Engine:
    registry = SchemaRegistry(schema_store, object_store)
    return Engine(
        schema=registry,
        objects=ObjectManager(registry, object_store),
        views=ViewManager(registry, view_store),
        query=ViewEngine(
            registry,
            object_store,
            default_page_size=default_page_size,
            max_page_size=max_page_size,
        ),
        aggregation=AggregationEngine(registry, object_store),
        permissions=permission_source,
    )


def build_memory_engine(store: MemoryStore | None = None, **options: int) -> Engine:
    store = store if store is not None else MemoryStore()
    return assemble_engine(
        schema_store=store,
        object_store=store,
        permission_source=store,
        view_store=store,
        **options,
    )


def build_engine(
    settings: ComposaSettings,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> Engine:
    """Build the engine for the configured store backend."""
    options = {"default_page_size": settings.default_page_size, "max_page_size": settings.max_page_size}
    if settings.store == "memory":
        logger.warning("Using the in-memory store -- data is lost on restart")
        return build_memory_engine(**options)

    if session_factory is None:
        msg = "The sql store needs a database session factory (COMPOSA_DATABASE_URL is unset?)"
        raise RuntimeError(msg)

    from composa.engine.store.sql import SqlStore

    store = SqlStore(session_factory)
    return assemble_engine(
        schema_store=store,
        object_store=store,
        permission_source=store,
        view_store=store,
        **options,
    )
