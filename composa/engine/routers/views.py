"""Saved view endpoints and view evaluation."""

from __future__ import annotations

from fastapi import APIRouter, status

from composa.engine.deps import Access, Services
from composa.engine.models.api import EvaluateRequest, ViewCreate, ViewUpdate
from composa.engine.models.views import View, ViewResult

router = APIRouter(prefix="/views", tags=["views"])


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_view(body: ViewCreate, engine: Services, ctx: Access) -> View:
    return await engine.views.create_view(ctx, body)


@router.get("/list")
async def list_views(object_type_id: str, engine: Services, ctx: Access) -> list[View]:
    """Views of one object type, default first.  Creates the default view on first call."""
    return await engine.views.list_views(ctx, object_type_id)


@router.get("/{view_id}/get")
async def get_view(view_id: str, engine: Services, ctx: Access) -> View:
    return await engine.views.get_view(ctx, view_id)


@router.post("/{view_id}/update")
async def update_view(view_id: str, body: ViewUpdate, engine: Services, ctx: Access) -> View:
    return await engine.views.update_view(ctx, view_id, body)


@router.post("/{view_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_view(view_id: str, engine: Services, ctx: Access) -> None:
    await engine.views.delete_view(ctx, view_id)


@router.post("/{view_id}/evaluate")
async def evaluate_view(view_id: str, body: EvaluateRequest, engine: Services, ctx: Access) -> ViewResult:
    """Run the view: one page of rows, plus the board for kanban layouts."""
    view = await engine.views.get_view(ctx, view_id)
    return await engine.query.evaluate(ctx, view, page=body.page, page_size=body.page_size, search=body.search)
