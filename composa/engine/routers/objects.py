"""Object, module data and relation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from composa.engine.deps import Access, Services
from composa.engine.models.api import ModuleDataWrite, ObjectCreate, RelationCreate
from composa.engine.models.enums import RelationDirection
from composa.engine.models.objects import ModuleRecord, ObjectRelation, ObjectWithModules

router = APIRouter(prefix="/objects", tags=["objects"])


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_object(body: ObjectCreate, engine: Services, ctx: Access) -> ObjectWithModules:
    return await engine.objects.create_object(ctx, body)


@router.get("/{object_id}/get")
async def get_object(object_id: str, engine: Services, ctx: Access) -> ObjectWithModules:
    """Object with the modules the caller may read."""
    return await engine.objects.get_object(ctx, object_id)


@router.post("/{object_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_object(object_id: str, engine: Services, ctx: Access) -> None:
    await engine.objects.delete_object(ctx, object_id)


# -- Module data -----------------------------------------------------------------


@router.post("/{object_id}/modules/{module_id}/update")
async def update_module_data(
    object_id: str, module_id: str, body: ModuleDataWrite, engine: Services, ctx: Access
) -> ModuleRecord:
    """Merge ``data`` into the stored blob; keys not sent are kept."""
    return await engine.objects.update_module_data(ctx, object_id, module_id, body.data)


@router.post("/{object_id}/modules/{module_id}/attach", status_code=status.HTTP_201_CREATED)
async def attach_module(
    object_id: str, module_id: str, body: ModuleDataWrite, engine: Services, ctx: Access
) -> ModuleRecord:
    return await engine.objects.attach_module(ctx, object_id, module_id, body.data)


@router.post("/{object_id}/modules/{module_id}/detach", status_code=status.HTTP_204_NO_CONTENT)
async def detach_module(object_id: str, module_id: str, engine: Services, ctx: Access) -> None:
    await engine.objects.detach_module(ctx, object_id, module_id)


# -- Relations -------------------------------------------------------------------


@router.get("/{object_id}/relations")
async def list_relations(
    object_id: str, engine: Services, ctx: Access, direction: RelationDirection = RelationDirection.BOTH
) -> list[ObjectRelation]:
    return await engine.objects.list_relations(ctx, object_id, direction)


@router.post("/relations/create", status_code=status.HTTP_201_CREATED)
async def create_relation(body: RelationCreate, engine: Services, ctx: Access) -> ObjectRelation:
    return await engine.objects.create_relation(ctx, body)


@router.post("/relations/{relation_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_relation(relation_id: str, engine: Services, ctx: Access) -> None:
    await engine.objects.delete_relation(ctx, relation_id)
