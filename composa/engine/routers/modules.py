"""Module CRUD endpoints (RPC-style).

All write operations use POST; reads use GET.
"""

from __future__ import annotations

from fastapi import APIRouter, status

from composa.engine.deps import Access, Services
from composa.engine.models.api import ModuleCreate, ModuleUpdate
from composa.engine.models.schema import Module

router = APIRouter(prefix="/modules", tags=["modules"])


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_module(body: ModuleCreate, engine: Services, ctx: Access) -> Module:
    return await engine.schema.create_module(ctx, body)


@router.get("/list")
async def list_modules(engine: Services, _ctx: Access, active_only: bool = False) -> list[Module]:
    return await engine.schema.list_modules(active_only=active_only)


@router.get("/{module_id}/get")
async def get_module(module_id: str, engine: Services, _ctx: Access) -> Module:
    return await engine.schema.get_module(module_id)


@router.post("/{module_id}/update")
async def update_module(module_id: str, body: ModuleUpdate, engine: Services, ctx: Access) -> Module:
    """Partially update a module; field changes apply to future writes only."""
    return await engine.schema.update_module(ctx, module_id, body)


@router.post("/{module_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_module(module_id: str, engine: Services, ctx: Access) -> None:
    await engine.schema.delete_module(ctx, module_id)
