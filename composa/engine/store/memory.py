"""In-process store implementing every storage protocol.

Used by the unit tests and by ``COMPOSA_STORE=memory`` deployments.  Rows
are kept as pydantic models in plain dicts and copied on the way in and out,
so callers can never mutate stored state through a returned object.

Field-level pushdown is off by default.  Pass ``pushdown_operators`` to let
:meth:`fetch_headers` evaluate those operators itself; the query engine then
takes the pushed-down pagination path.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from loguru import logger

from composa.engine.models.enums import FilterOperator, RelationDirection
from composa.engine.models.objects import ModuleRecord, ObjectHeader, ObjectRelation
from composa.engine.models.permissions import ModuleGrant
from composa.engine.query.filters import evaluate_value

if TYPE_CHECKING:
    from composa.engine.models.schema import Module, ObjectType, ObjectTypeModule, ObjectTypeRelation
    from composa.engine.models.views import BoundFilter, View


class MemoryStore:
    """Dict-backed implementation of SchemaStore, ObjectStore, PermissionSource and ViewStore."""

    def __init__(self, *, pushdown_operators: Iterable[FilterOperator] = ()) -> None:
        self._pushdown = frozenset(pushdown_operators)

        self._modules: dict[str, Module] = {}
        self._object_types: dict[str, ObjectType] = {}
        self._composition: dict[tuple[str, str], ObjectTypeModule] = {}
        self._type_relations: dict[str, ObjectTypeRelation] = {}

        self._objects: dict[str, ObjectHeader] = {}
        self._data: dict[tuple[str, str], ModuleRecord] = {}
        self._relations: dict[str, ObjectRelation] = {}

        self._user_roles: dict[str, set[str]] = {}
        self._role_actions: dict[str, set[str]] = {}
        self._module_grants: list[ModuleGrant] = []

        self._views: dict[str, View] = {}

    # -- Schema ----------------------------------------------------------------

    async def insert_module(self, module: Module) -> None:
        self._modules[module.id] = module.model_copy(deep=True)

    async def update_module(self, module: Module) -> None:
        self._modules[module.id] = module.model_copy(deep=True)

    async def delete_module(self, module_id: str) -> None:
        self._modules.pop(module_id, None)
        for key in [k for k in self._composition if k[1] == module_id]:
            del self._composition[key]

    async def get_module(self, module_id: str) -> Module | None:
        module = self._modules.get(module_id)
        return module.model_copy(deep=True) if module else None

    async def get_module_by_name(self, name: str) -> Module | None:
        for module in self._modules.values():
            if module.name == name:
                return module.model_copy(deep=True)
        return None

    async def list_modules(self) -> list[Module]:
        return sorted((m.model_copy(deep=True) for m in self._modules.values()), key=lambda m: m.name)

    async def insert_object_type(self, object_type: ObjectType) -> None:
        self._object_types[object_type.id] = object_type.model_copy()

    async def update_object_type(self, object_type: ObjectType) -> None:
        self._object_types[object_type.id] = object_type.model_copy()

    async def delete_object_type(self, object_type_id: str) -> None:
        self._object_types.pop(object_type_id, None)
        for key in [k for k in self._composition if k[0] == object_type_id]:
            del self._composition[key]
        for view_id in [v.id for v in self._views.values() if v.object_type_id == object_type_id]:
            del self._views[view_id]
        for rel_id in [
            r.id for r in self._type_relations.values() if object_type_id in (r.source_type_id, r.target_type_id)
        ]:
            del self._type_relations[rel_id]

    async def get_object_type(self, object_type_id: str) -> ObjectType | None:
        object_type = self._object_types.get(object_type_id)
        return object_type.model_copy() if object_type else None

    async def get_object_type_by_name(self, name: str) -> ObjectType | None:
        for object_type in self._object_types.values():
            if object_type.name == name:
                return object_type.model_copy()
        return None

    async def list_object_types(self) -> list[ObjectType]:
        return sorted((t.model_copy() for t in self._object_types.values()), key=lambda t: t.name)

    async def list_composition(self, object_type_id: str) -> list[ObjectTypeModule]:
        return [link.model_copy() for (type_id, _), link in self._composition.items() if type_id == object_type_id]

    async def put_composition(self, link: ObjectTypeModule) -> None:
        self._composition[(link.object_type_id, link.module_id)] = link.model_copy()

    async def delete_composition(self, object_type_id: str, module_id: str) -> None:
        self._composition.pop((object_type_id, module_id), None)

    async def insert_type_relation(self, relation: ObjectTypeRelation) -> None:
        self._type_relations[relation.id] = relation.model_copy(deep=True)

    async def update_type_relation(self, relation: ObjectTypeRelation) -> None:
        self._type_relations[relation.id] = relation.model_copy(deep=True)

    async def delete_type_relation(self, relation_id: str) -> None:
        self._type_relations.pop(relation_id, None)

    async def get_type_relation(self, relation_id: str) -> ObjectTypeRelation | None:
        relation = self._type_relations.get(relation_id)
        return relation.model_copy(deep=True) if relation else None

    async def list_type_relations(self, object_type_id: str | None = None) -> list[ObjectTypeRelation]:
        relations = [
            r
            for r in self._type_relations.values()
            if object_type_id is None or object_type_id in (r.source_type_id, r.target_type_id)
        ]
        relations.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return [r.model_copy(deep=True) for r in relations]

    # -- Objects ---------------------------------------------------------------

    def supports_pushdown(self, bound: BoundFilter) -> bool:
        return bound.operator in self._pushdown

    async def fetch_headers(
        self,
        object_type_id: str,
        pushable_filters: Sequence[BoundFilter] = (),
        offset: int = 0,
        limit: int | None = None,
        *,
        owned_by: str | None = None,
    ) -> tuple[list[ObjectHeader], int]:
        headers = [h for h in self._objects.values() if h.object_type_id == object_type_id]
        if owned_by is not None:
            headers = [h for h in headers if h.owned_by(owned_by)]
        for bound in pushable_filters:
            headers = [h for h in headers if evaluate_value(bound, self._value(h.id, bound))]
        headers.sort(key=lambda h: (h.created_at, h.id))
        total = len(headers)
        end = None if limit is None else offset + limit
        return [h.model_copy() for h in headers[offset:end]], total

    def _value(self, object_id: str, bound: BoundFilter) -> Any:
        record = self._data.get((object_id, bound.module.id))
        return record.data.get(bound.field.key) if record else None

    async def fetch_module_data(self, object_ids: Sequence[str], module_id: str | None = None) -> list[ModuleRecord]:
        wanted = set(object_ids)
        return [
            r.model_copy(deep=True)
            for r in self._data.values()
            if r.object_id in wanted and (module_id is None or r.module_id == module_id)
        ]

    async def upsert_module_data(self, object_id: str, module_id: str, data: Mapping[str, Any]) -> ModuleRecord:
        existing = self._data.get((object_id, module_id))
        record = ModuleRecord(
            id=existing.id if existing else str(uuid.uuid4()),
            object_id=object_id,
            module_id=module_id,
            data=dict(data),
        )
        self._data[(object_id, module_id)] = record
        header = self._objects.get(object_id)
        if header is not None:
            self._objects[object_id] = header.model_copy(update={"updated_at": datetime.now(UTC)})
        return record.model_copy(deep=True)

    async def delete_module_data(self, object_id: str, module_id: str) -> None:
        self._data.pop((object_id, module_id), None)

    async def scan_module_data(self, module_id: str, object_type_id: str | None = None) -> list[ModuleRecord]:
        return [
            r.model_copy(deep=True)
            for (object_id, mid), r in self._data.items()
            if mid == module_id and self._of_type(object_id, object_type_id)
        ]

    async def count_module_data(self, module_id: str, object_type_id: str | None = None) -> int:
        return sum(
            1 for (object_id, mid) in self._data if mid == module_id and self._of_type(object_id, object_type_id)
        )

    async def count_objects_missing_module(self, object_type_id: str, module_id: str) -> int:
        return sum(
            1
            for h in self._objects.values()
            if h.object_type_id == object_type_id and (h.id, module_id) not in self._data
        )

    async def count_objects(self, object_type_id: str | None = None) -> int:
        return sum(1 for h in self._objects.values() if object_type_id in (None, h.object_type_id))

    async def count_objects_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for header in self._objects.values():
            counts[header.object_type_id] = counts.get(header.object_type_id, 0) + 1
        return counts

    async def recent_objects(self, limit: int, *, owned_by: str | None = None) -> list[ObjectHeader]:
        headers = [h for h in self._objects.values() if owned_by is None or h.owned_by(owned_by)]
        headers.sort(key=lambda h: (h.created_at, h.id), reverse=True)
        return [h.model_copy() for h in headers[:limit]]

    def _of_type(self, object_id: str, object_type_id: str | None) -> bool:
        header = self._objects.get(object_id)
        return header is not None and object_type_id in (None, header.object_type_id)

    async def insert_object(self, header: ObjectHeader, records: Iterable[ModuleRecord]) -> None:
        self._objects[header.id] = header.model_copy()
        for record in records:
            self._data[(record.object_id, record.module_id)] = record.model_copy(deep=True)

    async def get_object(self, object_id: str) -> ObjectHeader | None:
        header = self._objects.get(object_id)
        return header.model_copy() if header else None

    async def delete_object(self, object_id: str) -> None:
        self._objects.pop(object_id, None)
        for key in [k for k in self._data if k[0] == object_id]:
            del self._data[key]
        for rel_id in [
            r.id for r in self._relations.values() if object_id in (r.from_object_id, r.to_object_id)
        ]:
            del self._relations[rel_id]

    # -- Relations -------------------------------------------------------------

    async def insert_relation(self, relation: ObjectRelation) -> None:
        self._relations[relation.id] = relation.model_copy(deep=True)

    async def get_relation(self, relation_id: str) -> ObjectRelation | None:
        relation = self._relations.get(relation_id)
        return relation.model_copy(deep=True) if relation else None

    async def delete_relation(self, relation_id: str) -> None:
        self._relations.pop(relation_id, None)

    async def fetch_relations(self, object_id: str, direction: RelationDirection) -> list[ObjectRelation]:
        outgoing = direction in (RelationDirection.FROM, RelationDirection.BOTH)
        incoming = direction in (RelationDirection.TO, RelationDirection.BOTH)
        edges = [
            r
            for r in self._relations.values()
            if (outgoing and r.from_object_id == object_id) or (incoming and r.to_object_id == object_id)
        ]
        edges.sort(key=lambda r: (r.created_at, r.id))
        return [r.model_copy(deep=True) for r in edges]

    # -- Permissions -----------------------------------------------------------

    def assign_role(self, principal_id: str, role_id: str) -> None:
        self._user_roles.setdefault(principal_id, set()).add(role_id)

    def grant_action(self, role_id: str, *actions: str) -> None:
        self._role_actions.setdefault(role_id, set()).update(actions)

    def grant_module(self, grant: ModuleGrant) -> None:
        logger.debug("MemoryStore: grant {} -> {}", grant.scope, grant.role_id)
        self._module_grants.append(grant)

    async def roles_for(self, principal_id: str) -> set[str]:
        return set(self._user_roles.get(principal_id, ()))

    async def action_grants(self, roles: Iterable[str]) -> set[str]:
        actions: set[str] = set()
        for role in roles:
            actions |= self._role_actions.get(role, set())
        return actions

    async def module_grants(self, roles: Iterable[str]) -> list[ModuleGrant]:
        wanted = set(roles)
        return [g.model_copy() for g in self._module_grants if g.role_id in wanted]

    # -- Views -----------------------------------------------------------------

    async def insert_view(self, view: View) -> None:
        self._views[view.id] = view.model_copy(deep=True)

    async def insert_default_view(self, view: View) -> View:
        for existing in self._views.values():
            if existing.object_type_id == view.object_type_id and existing.is_default:
                return existing.model_copy(deep=True)
        self._views[view.id] = view.model_copy(deep=True)
        return view

    async def update_view(self, view: View) -> None:
        self._views[view.id] = view.model_copy(deep=True)

    async def delete_view(self, view_id: str) -> None:
        self._views.pop(view_id, None)

    async def get_view(self, view_id: str) -> View | None:
        view = self._views.get(view_id)
        return view.model_copy(deep=True) if view else None

    async def list_views(self, object_type_id: str) -> list[View]:
        views = [v for v in self._views.values() if v.object_type_id == object_type_id]
        views.sort(key=lambda v: (not v.is_default, v.created_at, v.id))
        return [v.model_copy(deep=True) for v in views]

