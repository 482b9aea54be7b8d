"""Object type endpoints, including module composition and relation definitions."""

from __future__ import annotations

from fastapi import APIRouter, status

from composa.engine.deps import Access, Services
from composa.engine.models.api import (
    CompositionCreate,
    CompositionUpdate,
    ObjectTypeCreate,
    ObjectTypeUpdate,
    TypeRelationCreate,
    TypeRelationToggle,
)
from composa.engine.models.schema import (
    CompositionEntry,
    ObjectType,
    ObjectTypeDetail,
    ObjectTypeRelation,
    ObjectTypeRelationDetail,
)

router = APIRouter(prefix="/object-types", tags=["object-types"])


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_object_type(body: ObjectTypeCreate, engine: Services, ctx: Access) -> ObjectTypeDetail:
    return await engine.schema.create_object_type(ctx, body)


@router.get("/list")
async def list_object_types(engine: Services, _ctx: Access, active_only: bool = False) -> list[ObjectType]:
    return await engine.schema.list_object_types(active_only=active_only)


@router.get("/{object_type_id}/get")
async def get_object_type(object_type_id: str, engine: Services, _ctx: Access) -> ObjectTypeDetail:
    """Object type with its resolved composition, ordered by position."""
    return await engine.schema.get_object_type(object_type_id)


@router.post("/{object_type_id}/update")
async def update_object_type(
    object_type_id: str, body: ObjectTypeUpdate, engine: Services, ctx: Access
) -> ObjectTypeDetail:
    return await engine.schema.update_object_type(ctx, object_type_id, body)


@router.post("/{object_type_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_object_type(object_type_id: str, engine: Services, ctx: Access) -> None:
    await engine.schema.delete_object_type(ctx, object_type_id)


# -- Composition ---------------------------------------------------------------


@router.post("/{object_type_id}/modules/attach", status_code=status.HTTP_201_CREATED)
async def attach_module(
    object_type_id: str, body: CompositionCreate, engine: Services, ctx: Access
) -> CompositionEntry:
    return await engine.schema.attach_module(ctx, object_type_id, body)


@router.post("/{object_type_id}/modules/{module_id}/update")
async def update_composition(
    object_type_id: str, module_id: str, body: CompositionUpdate, engine: Services, ctx: Access
) -> CompositionEntry:
    return await engine.schema.update_composition(ctx, object_type_id, module_id, body)


@router.post("/{object_type_id}/modules/{module_id}/detach", status_code=status.HTTP_204_NO_CONTENT)
async def detach_module(object_type_id: str, module_id: str, engine: Services, ctx: Access) -> None:
    await engine.schema.detach_module(ctx, object_type_id, module_id)


# -- Relation definitions ------------------------------------------------------


@router.get("/relations/list")
async def list_type_relations(
    engine: Services, _ctx: Access, object_type_id: str | None = None
) -> list[ObjectTypeRelationDetail]:
    """Relation definitions, newest first; ``object_type_id`` keeps those where it is source or target."""
    return await engine.schema.list_type_relations(object_type_id)


@router.post("/relations/create", status_code=status.HTTP_201_CREATED)
async def create_type_relation(body: TypeRelationCreate, engine: Services, ctx: Access) -> ObjectTypeRelation:
    return await engine.schema.create_type_relation(ctx, body)


@router.post("/relations/{relation_id}/toggle")
async def toggle_type_relation(
    relation_id: str, body: TypeRelationToggle, engine: Services, ctx: Access
) -> ObjectTypeRelation:
    return await engine.schema.set_type_relation_active(ctx, relation_id, body.is_active)


@router.post("/relations/{relation_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_type_relation(relation_id: str, engine: Services, ctx: Access) -> None:
    await engine.schema.delete_type_relation(ctx, relation_id)
