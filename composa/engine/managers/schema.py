"""Schema registry: modules, object types, their composition and the
relation definitions between object types.

Reads are open to every caller; mutations need ``module:manage`` or
``object_type:manage``.  Permission and shape checks run before any store
call of the mutation.

Composition changes never cascade into object data.  They are rejected
when they would leave existing objects inconsistent:

- detaching a *required* module while objects of the type still carry data
  for it;
- marking a module required (on attach or update) while objects of the type
  lack its data.

Detaching an optional module keeps the orphaned data; the engine ignores
modules that are not in the current composition.

Relation definitions describe which object types may be linked and how
(one-to-many, many-to-one, many-to-many).  They are removed together with
either of their object types.

There is no cache: every read goes to the store, so schema changes are
visible to the next query.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from loguru import logger
from pydantic import ValidationError

from composa.engine.errors import EngineValidationError, NotFoundError
from composa.engine.models.enums import Action
from composa.engine.models.schema import (
    CompositionEntry,
    Module,
    ObjectType,
    ObjectTypeDetail,
    ObjectTypeModule,
    ObjectTypeRelation,
    ObjectTypeRelationDetail,
)
from composa.engine.permissions import require_action

if TYPE_CHECKING:
    from composa.engine.models.api import (
        CompositionCreate,
        CompositionUpdate,
        ModuleCreate,
        ModuleUpdate,
        ObjectTypeCreate,
        ObjectTypeUpdate,
        TypeRelationCreate,
    )
    from composa.engine.models.permissions import AccessContext
    from composa.engine.store.base import ObjectStore, SchemaStore


class SchemaRegistry:
    def __init__(self, store: SchemaStore, objects: ObjectStore) -> None:
        self._store = store
        self._objects = objects

    # -- Modules: read ---------------------------------------------------------

    async def get_module(self, module_id: str) -> Module:
        module = await self._store.get_module(module_id)
        if module is None:
            raise NotFoundError("Module", module_id)
        return module

    async def get_module_by_name(self, name: str) -> Module:
        module = await self._store.get_module_by_name(name)
        if module is None:
            raise NotFoundError("Module", name)
        return module

    async def list_modules(self, *, active_only: bool = False) -> list[Module]:
        modules = await self._store.list_modules()
        return [m for m in modules if m.is_active] if active_only else modules

    # -- Modules: mutate -------------------------------------------------------

    async def create_module(self, ctx: AccessContext, body: ModuleCreate) -> Module:
        """Create a module.  Raises ``EngineValidationError`` on a duplicate name."""
        require_action(ctx, Action.MODULE_MANAGE)
        if await self._store.get_module_by_name(body.name) is not None:
            msg = f"Module '{body.name}' already exists"
            raise EngineValidationError(msg)

        now = datetime.now(UTC)
        module = _build(Module, id=str(uuid.uuid4()), created_at=now, updated_at=now, **body.model_dump())
        await self._store.insert_module(module)
        logger.info("Module created: {} ({})", module.name, module.id)
        return module

    async def update_module(self, ctx: AccessContext, module_id: str, body: ModuleUpdate) -> Module:
        require_action(ctx, Action.MODULE_MANAGE)
        module = await self.get_module(module_id)

        changes = body.model_dump(exclude_unset=True)
        if not changes:
            return module

        new_name = changes.get("name")
        if new_name and new_name != module.name and await self._store.get_module_by_name(new_name) is not None:
            msg = f"Module '{new_name}' already exists"
            raise EngineValidationError(msg)

        updated = _build(Module, **{**module.model_dump(), **changes, "updated_at": datetime.now(UTC)})
        await self._store.update_module(updated)
        logger.info("Module updated: {} (fields: {})", updated.name, ", ".join(sorted(changes)))
        return updated

    async def delete_module(self, ctx: AccessContext, module_id: str) -> None:
        """Delete a module.  Rejected while any object carries data for it."""
        require_action(ctx, Action.MODULE_MANAGE)
        module = await self.get_module(module_id)
        in_use = await self._objects.count_module_data(module_id)
        if in_use:
            msg = f"Module '{module.name}' is used by {in_use} object(s) and cannot be deleted"
            raise EngineValidationError(msg)
        await self._store.delete_module(module_id)
        logger.info("Module deleted: {} ({})", module.name, module_id)

    # -- Object types: read ----------------------------------------------------

    async def get_object_type(self, object_type_id: str) -> ObjectTypeDetail:
        object_type = await self._store.get_object_type(object_type_id)
        if object_type is None:
            raise NotFoundError("Object type", object_type_id)
        return await self._detail(object_type)

    async def get_object_type_by_name(self, name: str) -> ObjectTypeDetail:
        object_type = await self._store.get_object_type_by_name(name)
        if object_type is None:
            raise NotFoundError("Object type", name)
        return await self._detail(object_type)

    async def list_object_types(self, *, active_only: bool = False) -> list[ObjectType]:
        object_types = await self._store.list_object_types()
        return [t for t in object_types if t.is_active] if active_only else object_types

    async def resolve_composition(self, object_type_id: str) -> list[CompositionEntry]:
        """Ordered, schema-resolved composition (``position``, then module name)."""
        if await self._store.get_object_type(object_type_id) is None:
            raise NotFoundError("Object type", object_type_id)
        return await self._composition(object_type_id)

    async def _composition(self, object_type_id: str) -> list[CompositionEntry]:
        entries = []
        for link in await self._store.list_composition(object_type_id):
            module = await self._store.get_module(link.module_id)
            if module is None:
                logger.warning("Composition of {} points at missing module {}", object_type_id, link.module_id)
                continue
            entries.append(CompositionEntry(module=module, required=link.required, position=link.position))
        entries.sort(key=lambda e: (e.position, e.module.name))
        return entries

    async def _detail(self, object_type: ObjectType) -> ObjectTypeDetail:
        modules = await self._composition(object_type.id)
        return ObjectTypeDetail(**object_type.model_dump(), modules=modules)

    # -- Object types: mutate --------------------------------------------------

    async def create_object_type(self, ctx: AccessContext, body: ObjectTypeCreate) -> ObjectTypeDetail:
        """Create an object type, optionally with its initial composition."""
        require_action(ctx, Action.OBJECT_TYPE_MANAGE)
        if await self._store.get_object_type_by_name(body.name) is not None:
            msg = f"Object type '{body.name}' already exists"
            raise EngineValidationError(msg)

        module_ids = [entry.module_id for entry in body.modules]
        if len(module_ids) != len(set(module_ids)):
            msg = "A module can only be attached once per object type"
            raise EngineValidationError(msg)
        for module_id in module_ids:
            await self.get_module(module_id)

        now = datetime.now(UTC)
        object_type = ObjectType(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            **body.model_dump(exclude={"modules"}),
        )
        await self._store.insert_object_type(object_type)
        for index, entry in enumerate(body.modules):
            position = entry.position if entry.position is not None else index
            await self._store.put_composition(
                ObjectTypeModule(
                    object_type_id=object_type.id,
                    module_id=entry.module_id,
                    required=entry.required,
                    position=position,
                )
            )
        logger.info("Object type created: {} ({} modules)", object_type.name, len(body.modules))
        return await self._detail(object_type)

    async def update_object_type(self, ctx: AccessContext, object_type_id: str, body: ObjectTypeUpdate) -> ObjectTypeDetail:
        require_action(ctx, Action.OBJECT_TYPE_MANAGE)
        object_type = await self._store.get_object_type(object_type_id)
        if object_type is None:
            raise NotFoundError("Object type", object_type_id)

        changes = body.model_dump(exclude_unset=True)
        if changes:
            new_name = changes.get("name")
            if (
                new_name
                and new_name != object_type.name
                and await self._store.get_object_type_by_name(new_name) is not None
            ):
                msg = f"Object type '{new_name}' already exists"
                raise EngineValidationError(msg)
            object_type = object_type.model_copy(update={**changes, "updated_at": datetime.now(UTC)})
            await self._store.update_object_type(object_type)
        return await self._detail(object_type)

    async def delete_object_type(self, ctx: AccessContext, object_type_id: str) -> None:
        """Delete an object type.  Rejected while objects of the type exist."""
        require_action(ctx, Action.OBJECT_TYPE_MANAGE)
        object_type = await self._store.get_object_type(object_type_id)
        if object_type is None:
            raise NotFoundError("Object type", object_type_id)
        count = await self._objects.count_objects(object_type_id)
        if count:
            msg = f"Object type '{object_type.name}' still has {count} object(s)"
            raise EngineValidationError(msg)
        await self._store.delete_object_type(object_type_id)
        logger.info("Object type deleted: {} ({})", object_type.name, object_type_id)

    # -- Composition -----------------------------------------------------------

    async def attach_module(self, ctx: AccessContext, object_type_id: str, body: CompositionCreate) -> CompositionEntry:
        require_action(ctx, Action.OBJECT_TYPE_MANAGE)
        composition = await self.resolve_composition(object_type_id)
        module = await self.get_module(body.module_id)
        if any(e.module.id == module.id for e in composition):
            msg = f"Module '{module.name}' is already attached to this object type"
            raise EngineValidationError(msg)
        if body.required:
            await self._check_can_require(object_type_id, module)

        position = body.position
        if position is None:
            position = max((e.position for e in composition), default=-1) + 1
        await self._store.put_composition(
            ObjectTypeModule(object_type_id=object_type_id, module_id=module.id, required=body.required, position=position)
        )
        logger.info("Module {} attached to object type {} (position={})", module.name, object_type_id, position)
        return CompositionEntry(module=module, required=body.required, position=position)

    async def update_composition(
        self, ctx: AccessContext, object_type_id: str, module_id: str, body: CompositionUpdate
    ) -> CompositionEntry:
        """Change the ``required`` flag or ``position`` of an attached module."""
        require_action(ctx, Action.OBJECT_TYPE_MANAGE)
        entry = await self._entry(object_type_id, module_id)
        changes = body.model_dump(exclude_unset=True, exclude_none=True)
        if changes.get("required") and not entry.required:
            await self._check_can_require(object_type_id, entry.module)

        updated = entry.model_copy(update=changes)
        await self._store.put_composition(
            ObjectTypeModule(
                object_type_id=object_type_id,
                module_id=module_id,
                required=updated.required,
                position=updated.position,
            )
        )
        return updated

    async def detach_module(self, ctx: AccessContext, object_type_id: str, module_id: str) -> None:
        require_action(ctx, Action.OBJECT_TYPE_MANAGE)
        entry = await self._entry(object_type_id, module_id)
        if entry.required:
            carrying = await self._objects.count_module_data(module_id, object_type_id)
            if carrying:
                msg = (
                    f"Module '{entry.module.name}' is required and {carrying} object(s) of this type carry its data"
                )
                raise EngineValidationError(msg)
        await self._store.delete_composition(object_type_id, module_id)
        logger.info("Module {} detached from object type {}", entry.module.name, object_type_id)

    async def _entry(self, object_type_id: str, module_id: str) -> CompositionEntry:
        for entry in await self.resolve_composition(object_type_id):
            if entry.module.id == module_id:
                return entry
        raise NotFoundError("Composition entry", f"{object_type_id}/{module_id}")

    async def _check_can_require(self, object_type_id: str, module: Module) -> None:
        missing = await self._objects.count_objects_missing_module(object_type_id, module.id)
        if missing:
            msg = f"Cannot require module '{module.name}': {missing} existing object(s) lack its data"
            raise EngineValidationError(msg)

    # -- Relation definitions --------------------------------------------------

    async def list_type_relations(self, object_type_id: str | None = None) -> list[ObjectTypeRelationDetail]:
        """Relation definitions, newest first, with both type names resolved.

        With *object_type_id*, only definitions where that type is source or
        target are returned.
        """
        if object_type_id is not None and await self._store.get_object_type(object_type_id) is None:
            raise NotFoundError("Object type", object_type_id)
        types = {t.id: t for t in await self._store.list_object_types()}
        details = []
        for relation in await self._store.list_type_relations(object_type_id):
            source = types.get(relation.source_type_id)
            target = types.get(relation.target_type_id)
            details.append(
                ObjectTypeRelationDetail(
                    **relation.model_dump(),
                    source_type_name=source.name if source else None,
                    source_type_display_name=source.display_name if source else None,
                    target_type_name=target.name if target else None,
                    target_type_display_name=target.display_name if target else None,
                )
            )
        return details

    async def create_type_relation(self, ctx: AccessContext, body: TypeRelationCreate) -> ObjectTypeRelation:
        """Define a relation between two object types.

        ``source_field_name`` must be unique per source type.  Source and
        target may be the same type.
        """
        require_action(ctx, Action.OBJECT_TYPE_MANAGE)
        for type_id in (body.source_type_id, body.target_type_id):
            if await self._store.get_object_type(type_id) is None:
                raise NotFoundError("Object type", type_id)
        for existing in await self._store.list_type_relations(body.source_type_id):
            if existing.source_type_id == body.source_type_id and existing.source_field_name == body.source_field_name:
                msg = f"A relation with field name '{body.source_field_name}' already exists on this object type"
                raise EngineValidationError(msg)

        now = datetime.now(UTC)
        relation = ObjectTypeRelation(id=str(uuid.uuid4()), created_at=now, updated_at=now, **body.model_dump())
        await self._store.insert_type_relation(relation)
        logger.info(
            "Relation definition created: {} -[{}]-> {} ({})",
            body.source_type_id,
            relation.relation_type,
            body.target_type_id,
            relation.id,
        )
        return relation

    async def set_type_relation_active(self, ctx: AccessContext, relation_id: str, is_active: bool) -> ObjectTypeRelation:
        require_action(ctx, Action.OBJECT_TYPE_MANAGE)
        relation = await self._type_relation(relation_id)
        if relation.is_active == is_active:
            return relation
        updated = relation.model_copy(update={"is_active": is_active, "updated_at": datetime.now(UTC)})
        await self._store.update_type_relation(updated)
        logger.info("Relation definition {} {}", relation_id, "activated" if is_active else "deactivated")
        return updated

    async def delete_type_relation(self, ctx: AccessContext, relation_id: str) -> None:
        require_action(ctx, Action.OBJECT_TYPE_MANAGE)
        await self._type_relation(relation_id)
        await self._store.delete_type_relation(relation_id)
        logger.info("Relation definition deleted: {}", relation_id)

    async def _type_relation(self, relation_id: str) -> ObjectTypeRelation:
        relation = await self._store.get_type_relation(relation_id)
        if relation is None:
            raise NotFoundError("Relation definition", relation_id)
        return relation


def _build[M: (Module, ObjectType)](model: type[M], **values: object) -> M:
    """Construct a domain model, turning schema errors into ``EngineValidationError``."""
    try:
        return model.model_validate(values)
    except ValidationError as exc:
        problems = "; ".join(e["msg"].removeprefix("Value error, ") for e in exc.errors())
        msg = f"Invalid {model.__name__.lower()}: {problems}"
        raise EngineValidationError(msg) from exc
