"""Object lifecycle: creation with module data, module data writes, relations.

An object is created together with the data of every required module of its
type and deleted together with all of its module data and relations.

Module data writes merge the incoming keys into the stored blob, validate the
result and replace the whole blob.  Incoming keys must be declared by the
module; stored keys the schema no longer declares are carried over as is.
Concurrent writers to the same object/module pair are last-writer-wins.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from loguru import logger

from composa.engine.errors import EngineValidationError, NotFoundError
from composa.engine.models.enums import Access, Action, RelationDirection
from composa.engine.models.objects import ModuleRecord, ObjectHeader, ObjectRelation, ObjectWithModules
from composa.engine.permissions import (
    can_access,
    require_action,
    require_module_access,
    require_object_action,
)
from composa.engine.values import apply_defaults, display_name, validate_payload

if TYPE_CHECKING:
    from composa.engine.managers.schema import SchemaRegistry
    from composa.engine.models.api import ObjectCreate, RelationCreate
    from composa.engine.models.permissions import AccessContext
    from composa.engine.models.schema import CompositionEntry
    from composa.engine.store.base import ObjectStore


def assemble(
    header: ObjectHeader,
    composition: list[CompositionEntry],
    records: Mapping[str, Mapping[str, Any]],
) -> ObjectWithModules:
    """Join a header with its module data (``records`` keyed by module id), in composition order."""
    modules = {e.module.name: dict(records[e.module.id]) for e in composition if e.module.id in records}
    return ObjectWithModules(**header.model_dump(), display_name=display_name(modules), modules=modules)


class ObjectManager:
    def __init__(self, schema: SchemaRegistry, store: ObjectStore) -> None:
        self._schema = schema
        self._store = store

    # -- Objects ---------------------------------------------------------------

    async def create_object(self, ctx: AccessContext, body: ObjectCreate) -> ObjectWithModules:
        """Create an object with its initial module data.

        Every required module of the type must be provided.  Data is validated
        against each module's schema after defaults are applied.

        Raises
        ------
        ForbiddenError
            Missing ``object:create`` or write access to a provided module.
        EngineValidationError
            Unknown or missing required module, or invalid data.
        """
        require_action(ctx, Action.OBJECT_CREATE)
        composition = await self._schema.resolve_composition(body.object_type_id)
        by_name = {e.module.name: e for e in composition}

        unknown = sorted(set(body.modules) - set(by_name))
        if unknown:
            msg = f"Modules not part of this object type: {', '.join(unknown)}"
            raise EngineValidationError(msg)
        missing = [e.module.name for e in composition if e.required and e.module.name not in body.modules]
        if missing:
            msg = f"Missing required modules: {', '.join(missing)}"
            raise EngineValidationError(msg)

        for name in body.modules:
            module = by_name[name].module
            require_module_access(ctx, module.id, body.object_type_id, Access.WRITE, module_name=name)

        now = datetime.now(UTC)
        header = ObjectHeader(
            id=str(uuid.uuid4()),
            object_type_id=body.object_type_id,
            owner_id=body.owner_id or ctx.principal_id,
            created_by=ctx.principal_id,
            created_at=now,
            updated_at=now,
        )
        records = []
        for name, data in body.modules.items():
            module = by_name[name].module
            payload = validate_payload(module, apply_defaults(module, data))
            records.append(ModuleRecord(id=str(uuid.uuid4()), object_id=header.id, module_id=module.id, data=payload))

        await self._store.insert_object(header, records)
        logger.info("Object created: {} (type={}, modules={})", header.id, body.object_type_id, len(records))
        return assemble(header, composition, {r.module_id: r.data for r in records})

    async def get_object(self, ctx: AccessContext, object_id: str) -> ObjectWithModules:
        """Fetch an object with the modules the principal may read."""
        header = await self._header(object_id)
        require_object_action(ctx, header, Action.OBJECT_READ)
        composition = await self._schema.resolve_composition(header.object_type_id)
        readable = [e for e in composition if can_access(ctx, e.module.id, header.object_type_id, Access.READ)]
        records = await self._store.fetch_module_data([object_id])
        return assemble(header, readable, {r.module_id: r.data for r in records})

    async def delete_object(self, ctx: AccessContext, object_id: str) -> None:
        header = await self._header(object_id)
        require_object_action(ctx, header, Action.OBJECT_DELETE)
        await self._store.delete_object(object_id)
        logger.info("Object deleted: {}", object_id)

    async def _header(self, object_id: str) -> ObjectHeader:
        header = await self._store.get_object(object_id)
        if header is None:
            raise NotFoundError("Object", object_id)
        return header

    async def _composed_entry(self, header: ObjectHeader, module_id: str) -> CompositionEntry:
        for entry in await self._schema.resolve_composition(header.object_type_id):
            if entry.module.id == module_id:
                return entry
        msg = f"Module '{module_id}' is not part of object type '{header.object_type_id}'"
        raise EngineValidationError(msg)

    # -- Module data -----------------------------------------------------------

    async def update_module_data(
        self, ctx: AccessContext, object_id: str, module_id: str, data: Mapping[str, Any]
    ) -> ModuleRecord:
        """Merge *data* into the object's blob for *module_id* and store it.

        Works as an upsert: a composed module without data yet is attached.
        """
        header = await self._header(object_id)
        require_object_action(ctx, header, Action.OBJECT_UPDATE)
        entry = await self._composed_entry(header, module_id)
        require_module_access(ctx, module_id, header.object_type_id, Access.WRITE, module_name=entry.module.name)

        existing = await self._store.fetch_module_data([object_id], module_id)
        if existing:
            stored = existing[0].data
            declared = {f.key for f in entry.module.fields}
            retained = {k: v for k, v in stored.items() if k not in declared}
            merged = {k: v for k, v in stored.items() if k in declared} | dict(data)
            payload = validate_payload(entry.module, merged) | retained
        else:
            payload = validate_payload(entry.module, apply_defaults(entry.module, data))
        record = await self._store.upsert_module_data(object_id, module_id, payload)
        logger.debug("Module data written: object={} module={}", object_id, entry.module.name)
        return record

    async def attach_module(
        self, ctx: AccessContext, object_id: str, module_id: str, data: Mapping[str, Any]
    ) -> ModuleRecord:
        """Add data for a composed module the object does not carry yet."""
        header = await self._header(object_id)
        require_object_action(ctx, header, Action.OBJECT_UPDATE)
        entry = await self._composed_entry(header, module_id)
        require_module_access(ctx, module_id, header.object_type_id, Access.WRITE, module_name=entry.module.name)

        if await self._store.fetch_module_data([object_id], module_id):
            msg = f"Module '{entry.module.name}' is already attached to object '{object_id}'"
            raise EngineValidationError(msg)
        payload = validate_payload(entry.module, apply_defaults(entry.module, data))
        return await self._store.upsert_module_data(object_id, module_id, payload)

    async def detach_module(self, ctx: AccessContext, object_id: str, module_id: str) -> None:
        """Remove an optional module's data from an object."""
        header = await self._header(object_id)
        require_object_action(ctx, header, Action.OBJECT_UPDATE)
        entry = await self._composed_entry(header, module_id)
        if entry.required:
            msg = f"Module '{entry.module.name}' is required and cannot be removed"
            raise EngineValidationError(msg)
        require_module_access(ctx, module_id, header.object_type_id, Access.DELETE, module_name=entry.module.name)
        if not await self._store.fetch_module_data([object_id], module_id):
            raise NotFoundError("Module data", f"{object_id}/{entry.module.name}")
        await self._store.delete_module_data(object_id, module_id)

    # -- Relations -------------------------------------------------------------

    async def create_relation(self, ctx: AccessContext, body: RelationCreate) -> ObjectRelation:
        require_action(ctx, Action.RELATION_CREATE)
        if body.from_object_id == body.to_object_id:
            msg = "An object cannot be related to itself"
            raise EngineValidationError(msg)
        await self._header(body.from_object_id)
        await self._header(body.to_object_id)

        relation = ObjectRelation(
            id=str(uuid.uuid4()),
            from_object_id=body.from_object_id,
            to_object_id=body.to_object_id,
            relation_type=body.relation_type,
            metadata=body.metadata,
            created_at=datetime.now(UTC),
        )
        await self._store.insert_relation(relation)
        logger.info("Relation created: {} -[{}]-> {}", relation.from_object_id, relation.relation_type, relation.to_object_id)
        return relation

    async def list_relations(
        self, ctx: AccessContext, object_id: str, direction: RelationDirection = RelationDirection.BOTH
    ) -> list[ObjectRelation]:
        header = await self._header(object_id)
        require_object_action(ctx, header, Action.OBJECT_READ)
        return await self._store.fetch_relations(object_id, direction)

    async def delete_relation(self, ctx: AccessContext, relation_id: str) -> None:
        require_action(ctx, Action.RELATION_DELETE)
        if await self._store.get_relation(relation_id) is None:
            raise NotFoundError("Relation", relation_id)
        await self._store.delete_relation(relation_id)
