"""Saved view CRUD.

Each object type has exactly one default view.  It is created on first
access as ``"All <display name>"`` (table layout, every composed field
visible) and can be edited but never deleted.

Views are visible workspace-wide unless ``unlisted``; an unlisted view is
only visible to its creator and reads by anyone else report it as missing.
Only the creator or a holder of ``view:manage`` may change or delete a view.

Filters, sorts, visible fields and the kanban field are checked against the
object type's current composition on every write.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from loguru import logger

from composa.engine.errors import EngineValidationError, ForbiddenError, NotFoundError
from composa.engine.models.enums import Action, LayoutType, Visibility
from composa.engine.models.views import FieldRef, View
from composa.engine.permissions import has_action, read_scope
from composa.engine.query.filters import bind_filter, build_field_map, resolve_field
from composa.engine.query.kanban import resolve_grouping_field

if TYPE_CHECKING:
    from composa.engine.managers.schema import SchemaRegistry
    from composa.engine.models.api import ViewCreate, ViewUpdate
    from composa.engine.models.permissions import AccessContext
    from composa.engine.models.schema import CompositionEntry
    from composa.engine.store.base import ViewStore


def default_visible_fields(composition: list[CompositionEntry]) -> list[FieldRef]:
    refs = []
    for entry in composition:
        for field in entry.module.fields:
            refs.append(FieldRef(module=entry.module.name, field=field.key, position=len(refs)))
    return refs


def check_view(view: View, composition: list[CompositionEntry], *, check_visible: bool = True) -> None:
    """Raise ``EngineValidationError`` if *view* references fields the composition lacks."""
    field_map = build_field_map(composition)
    for flt in view.filters:
        bind_filter(field_map, flt)
    for sort in view.sorts:
        resolve_field(field_map, sort.module, sort.field)
    for ref in view.visible_fields if check_visible else ():
        resolve_field(field_map, ref.module, ref.field)
    if view.layout_type == LayoutType.KANBAN:
        resolve_grouping_field(view, composition)


class ViewManager:
    def __init__(self, schema: SchemaRegistry, store: ViewStore) -> None:
        self._schema = schema
        self._store = store

    async def ensure_default_view(self, ctx: AccessContext, object_type_id: str) -> View:
        """Return the type's default view, creating it on first access."""
        views = await self._store.list_views(object_type_id)
        if views and views[0].is_default:
            return views[0]

        object_type = await self._schema.get_object_type(object_type_id)
        now = datetime.now(UTC)
        candidate = View(
            id=str(uuid.uuid4()),
            object_type_id=object_type_id,
            name=f"All {object_type.display_name}",
            layout_type=LayoutType.TABLE,
            visible_fields=default_visible_fields(object_type.modules),
            is_default=True,
            visibility=Visibility.WORKSPACE,
            created_by=ctx.principal_id,
            created_at=now,
            updated_at=now,
        )
        view = await self._store.insert_default_view(candidate)
        if view.id == candidate.id:
            logger.info("Default view created for object type {}: {}", object_type.name, view.name)
        return view

    async def list_views(self, ctx: AccessContext, object_type_id: str) -> list[View]:
        """Views of one type visible to the principal, default first."""
        read_scope(ctx)
        await self._schema.resolve_composition(object_type_id)
        await self.ensure_default_view(ctx, object_type_id)
        views = await self._store.list_views(object_type_id)
        return [v for v in views if v.visible_to(ctx.principal_id)]

    async def get_view(self, ctx: AccessContext, view_id: str) -> View:
        read_scope(ctx)
        view = await self._store.get_view(view_id)
        if view is None or not view.visible_to(ctx.principal_id):
            raise NotFoundError("View", view_id)
        return view

    async def create_view(self, ctx: AccessContext, body: ViewCreate) -> View:
        read_scope(ctx)
        composition = await self._schema.resolve_composition(body.object_type_id)
        now = datetime.now(UTC)
        view = View(
            id=str(uuid.uuid4()),
            created_by=ctx.principal_id,
            created_at=now,
            updated_at=now,
            **body.model_dump(),
        )
        if not view.visible_fields:
            view.visible_fields = default_visible_fields(composition)
        check_view(view, composition)
        await self._store.insert_view(view)
        logger.info("View created: {} ({}) on {}", view.name, view.id, view.object_type_id)
        return view

    async def update_view(self, ctx: AccessContext, view_id: str, body: ViewUpdate) -> View:
        view = await self.get_view(ctx, view_id)
        self._require_owner(ctx, view)

        changes = body.model_dump(exclude_unset=True)
        if not changes:
            return view
        if view.is_default and changes.get("visibility") == Visibility.UNLISTED:
            msg = "The default view cannot be unlisted"
            raise EngineValidationError(msg)

        updated = View.model_validate({**view.model_dump(), **changes, "updated_at": datetime.now(UTC)})
        composition = await self._schema.resolve_composition(view.object_type_id)
        check_view(updated, composition, check_visible="visible_fields" in changes)
        await self._store.update_view(updated)
        return updated

    async def delete_view(self, ctx: AccessContext, view_id: str) -> None:
        view = await self.get_view(ctx, view_id)
        if view.is_default:
            msg = "The default view cannot be deleted"
            raise EngineValidationError(msg)
        self._require_owner(ctx, view)
        await self._store.delete_view(view_id)
        logger.info("View deleted: {} ({})", view.name, view_id)

    @staticmethod
    def _require_owner(ctx: AccessContext, view: View) -> None:
        if view.created_by != ctx.principal_id and not has_action(ctx, Action.VIEW_MANAGE):
            msg = f"Only the creator or a view manager may change view '{view.id}'"
            raise ForbiddenError(msg)
