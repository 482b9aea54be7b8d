"""Storage protocols consumed by the engine.

The engine never talks to a database directly.  Schema, object data,
permission grants and saved views are reached through the async protocols
below; ``memory.py`` and ``sql.py`` implement all four.

Every implementation must push down object-type scoping, ownership scoping
and pagination bounds in :meth:`ObjectStore.fetch_headers`.  Field-level
filter pushdown is optional and advertised per filter through
:meth:`ObjectStore.supports_pushdown`; whatever is not pushed down is
evaluated in-core by the query engine.

Backend failures surface as ``StoreError``.  Lookups of missing rows return
``None``; raising ``NotFoundError`` is the managers' job.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from composa.engine.models.enums import RelationDirection
    from composa.engine.models.objects import ModuleRecord, ObjectHeader, ObjectRelation
    from composa.engine.models.permissions import ModuleGrant
    from composa.engine.models.schema import Module, ObjectType, ObjectTypeModule, ObjectTypeRelation
    from composa.engine.models.views import BoundFilter, View


@runtime_checkable
class SchemaStore(Protocol):
    """Persistence for modules, object types, their composition and relation definitions."""

    async def insert_module(self, module: Module) -> None: ...

    async def update_module(self, module: Module) -> None: ...

    async def delete_module(self, module_id: str) -> None:
        """Delete a module and any composition links pointing at it."""
        ...

    async def get_module(self, module_id: str) -> Module | None: ...

    async def get_module_by_name(self, name: str) -> Module | None: ...

    async def list_modules(self) -> list[Module]: ...

    async def insert_object_type(self, object_type: ObjectType) -> None: ...

    async def update_object_type(self, object_type: ObjectType) -> None: ...

    async def delete_object_type(self, object_type_id: str) -> None:
        """Delete an object type with its composition links, views and relation definitions."""
        ...

    async def get_object_type(self, object_type_id: str) -> ObjectType | None: ...

    async def get_object_type_by_name(self, name: str) -> ObjectType | None: ...

    async def list_object_types(self) -> list[ObjectType]: ...

    async def list_composition(self, object_type_id: str) -> list[ObjectTypeModule]: ...

    async def put_composition(self, link: ObjectTypeModule) -> None:
        """Insert or replace the link for ``(object_type_id, module_id)``."""
        ...

    async def delete_composition(self, object_type_id: str, module_id: str) -> None: ...

    async def insert_type_relation(self, relation: ObjectTypeRelation) -> None: ...

    async def update_type_relation(self, relation: ObjectTypeRelation) -> None: ...

    async def delete_type_relation(self, relation_id: str) -> None: ...

    async def get_type_relation(self, relation_id: str) -> ObjectTypeRelation | None: ...

    async def list_type_relations(self, object_type_id: str | None = None) -> list[ObjectTypeRelation]:
        """Newest first.  With *object_type_id*, only definitions where it is source or target."""
        ...


@runtime_checkable
class ObjectStore(Protocol):
    """Persistence for object headers, module data blobs and relations."""

    def supports_pushdown(self, bound: BoundFilter) -> bool:
        """Whether :meth:`fetch_headers` can evaluate *bound* itself."""
        ...

    async def fetch_headers(
        self,
        object_type_id: str,
        pushable_filters: Sequence[BoundFilter] = (),
        offset: int = 0,
        limit: int | None = None,
        *,
        owned_by: str | None = None,
    ) -> tuple[list[ObjectHeader], int]:
        """Return one page of headers ordered by ``(created_at, id)`` plus the total match count.

        ``owned_by`` restricts to objects whose owner or creator is that principal.
        ``limit=None`` returns every match.
        """
        ...

    async def fetch_module_data(self, object_ids: Sequence[str], module_id: str | None = None) -> list[ModuleRecord]: ...

    async def upsert_module_data(self, object_id: str, module_id: str, data: Mapping[str, Any]) -> ModuleRecord:
        """Replace the whole blob for ``(object_id, module_id)``; bumps the header's ``updated_at``."""
        ...

    async def delete_module_data(self, object_id: str, module_id: str) -> None: ...

    async def scan_module_data(self, module_id: str, object_type_id: str | None = None) -> list[ModuleRecord]:
        """Every data blob of *module_id*, optionally limited to one object type."""
        ...

    async def count_module_data(self, module_id: str, object_type_id: str | None = None) -> int: ...

    async def count_objects_missing_module(self, object_type_id: str, module_id: str) -> int: ...

    async def count_objects(self, object_type_id: str | None = None) -> int: ...

    async def count_objects_by_type(self) -> dict[str, int]: ...

    async def recent_objects(self, limit: int, *, owned_by: str | None = None) -> list[ObjectHeader]:
        """The *limit* newest headers across all types, newest first."""
        ...

    async def insert_object(self, header: ObjectHeader, records: Iterable[ModuleRecord]) -> None:
        """Create a header and its initial module blobs atomically."""
        ...

    async def get_object(self, object_id: str) -> ObjectHeader | None: ...

    async def delete_object(self, object_id: str) -> None:
        """Delete an object together with its module data and relations."""
        ...

    async def insert_relation(self, relation: ObjectRelation) -> None: ...

    async def get_relation(self, relation_id: str) -> ObjectRelation | None: ...

    async def delete_relation(self, relation_id: str) -> None: ...

    async def fetch_relations(self, object_id: str, direction: RelationDirection) -> list[ObjectRelation]: ...


@runtime_checkable
class PermissionSource(Protocol):
    """Read side of role membership and grants."""

    async def roles_for(self, principal_id: str) -> set[str]: ...

    async def action_grants(self, roles: Iterable[str]) -> set[str]: ...

    async def module_grants(self, roles: Iterable[str]) -> list[ModuleGrant]: ...


@runtime_checkable
class ViewStore(Protocol):
    async def insert_view(self, view: View) -> None: ...

    async def insert_default_view(self, view: View) -> View:
        """Insert *view* as the type's default unless one exists; return the winner."""
        ...

    async def update_view(self, view: View) -> None: ...

    async def delete_view(self, view_id: str) -> None: ...

    async def get_view(self, view_id: str) -> View | None: ...

    async def list_views(self, object_type_id: str) -> list[View]:
        """Views of one type: default first, then by ``created_at``."""
        ...
