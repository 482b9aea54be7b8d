"""Saved view management."""

from __future__ import annotations

import pytest

from composa.engine.errors import EngineValidationError, ForbiddenError, KanbanUnavailableError, NotFoundError
from composa.engine.models import (
    CompositionCreate,
    FieldDef,
    FieldRef,
    FieldType,
    Filter,
    FilterOperator,
    LayoutType,
    ModuleCreate,
    ObjectTypeCreate,
    Sort,
    ViewCreate,
    ViewUpdate,
    Visibility,
)
from composa.engine.models.permissions import AccessContext
from composa.engine.services import Engine

from .factories import Crm


def _create(crm: Crm, **kwargs: object) -> ViewCreate:
    return ViewCreate(object_type_id=crm.deal_type.id, name=kwargs.pop("name", "Pipeline"), **kwargs)


# ---------------------------------------------------------------------------
# Default view
# ---------------------------------------------------------------------------


async def test_default_view_created_once(engine: Engine, admin: AccessContext, crm: Crm) -> None:
    first = await engine.views.ensure_default_view(admin, crm.deal_type.id)
    second = await engine.views.ensure_default_view(admin, crm.deal_type.id)

    assert first.id == second.id
    assert first.name == "All Deals"
    assert first.is_default
    assert first.layout_type == LayoutType.TABLE
    assert [(r.module, r.field) for r in first.visible_fields][:3] == [
        ("identity", "name"),
        ("identity", "email"),
        ("deal", "stage"),
    ]


async def test_list_views_default_first(engine: Engine, admin: AccessContext, crm: Crm) -> None:
    await engine.views.create_view(admin, _create(crm, name="Won deals"))
    views = await engine.views.list_views(admin, crm.deal_type.id)
    assert [v.name for v in views] == ["All Deals", "Won deals"]
    assert sum(v.is_default for v in views) == 1


async def test_default_view_cannot_be_deleted_or_unlisted(engine: Engine, admin: AccessContext, crm: Crm) -> None:
    default = await engine.views.ensure_default_view(admin, crm.deal_type.id)
    with pytest.raises(EngineValidationError, match="cannot be deleted"):
        await engine.views.delete_view(admin, default.id)
    with pytest.raises(EngineValidationError, match="cannot be unlisted"):
        await engine.views.update_view(admin, default.id, ViewUpdate(visibility=Visibility.UNLISTED))

    renamed = await engine.views.update_view(admin, default.id, ViewUpdate(name="Everything"))
    assert renamed.name == "Everything"
    assert renamed.is_default


# ---------------------------------------------------------------------------
# Create / update / delete
# ---------------------------------------------------------------------------


async def test_create_view_defaults_visible_fields(engine: Engine, member: AccessContext, crm: Crm) -> None:
    view = await engine.views.create_view(member, _create(crm))
    assert view.created_by == "member"
    assert not view.is_default
    assert len(view.visible_fields) == 7


@pytest.mark.parametrize(
    "kwargs",
    [
        {"filters": [Filter(module="deal", field="nope", operator=FilterOperator.EQ, value=1)]},
        {"filters": [Filter(module="deal", field="stage", operator=FilterOperator.IN, value="won")]},
        {"sorts": [Sort(module="ghost", field="amount")]},
        {"visible_fields": [FieldRef(module="deal", field="missing")]},
        {"layout_type": LayoutType.KANBAN, "kanban_field_key": "amount"},
    ],
)
async def test_create_view_checks_references(engine: Engine, admin: AccessContext, crm: Crm, kwargs: dict) -> None:
    with pytest.raises(EngineValidationError):
        await engine.views.create_view(admin, _create(crm, **kwargs))


async def test_kanban_needs_a_select_field(engine: Engine, admin: AccessContext) -> None:
    notes = await engine.schema.create_module(
        admin,
        ModuleCreate(name="memo", display_name="Memo", fields=[FieldDef(key="body", label="Body", type=FieldType.TEXT)]),
    )
    memo_type = await engine.schema.create_object_type(
        admin, ObjectTypeCreate(name="memo", display_name="Memos", modules=[CompositionCreate(module_id=notes.id)])
    )
    with pytest.raises(KanbanUnavailableError):
        await engine.views.create_view(
            admin, ViewCreate(object_type_id=memo_type.id, name="Board", layout_type=LayoutType.KANBAN)
        )


async def test_update_view_partial(engine: Engine, admin: AccessContext, crm: Crm) -> None:
    view = await engine.views.create_view(admin, _create(crm, icon="Star"))
    updated = await engine.views.update_view(
        admin, view.id, ViewUpdate(filters=[Filter(module="deal", field="stage", operator=FilterOperator.EQ, value="won")])
    )
    assert updated.icon == "Star"
    assert updated.filters[0].value == "won"
    assert (await engine.views.get_view(admin, view.id)).filters == updated.filters


async def test_update_view_rejects_bad_field(engine: Engine, admin: AccessContext, crm: Crm) -> None:
    view = await engine.views.create_view(admin, _create(crm))
    with pytest.raises(EngineValidationError):
        await engine.views.update_view(admin, view.id, ViewUpdate(sorts=[Sort(module="deal", field="ghost")]))


async def test_only_owner_or_manager_changes_view(
    engine: Engine, admin: AccessContext, member: AccessContext, crm: Crm
) -> None:
    mine = await engine.views.create_view(member, _create(crm, name="Mine"))
    theirs = await engine.views.create_view(admin, _create(crm, name="Theirs"))

    await engine.views.update_view(member, mine.id, ViewUpdate(name="Still mine"))
    with pytest.raises(ForbiddenError):
        await engine.views.update_view(member, theirs.id, ViewUpdate(name="Taken"))
    with pytest.raises(ForbiddenError):
        await engine.views.delete_view(member, theirs.id)

    await engine.views.delete_view(admin, mine.id)
    with pytest.raises(NotFoundError):
        await engine.views.get_view(admin, mine.id)


async def test_unlisted_view_hidden_from_others(
    engine: Engine, admin: AccessContext, member: AccessContext, crm: Crm
) -> None:
    private = await engine.views.create_view(member, _create(crm, name="Private", visibility=Visibility.UNLISTED))

    assert (await engine.views.get_view(member, private.id)).name == "Private"
    with pytest.raises(NotFoundError):
        await engine.views.get_view(admin, private.id)
    assert "Private" not in [v.name for v in await engine.views.list_views(admin, crm.deal_type.id)]
    assert "Private" in [v.name for v in await engine.views.list_views(member, crm.deal_type.id)]


async def test_views_removed_with_object_type(engine: Engine, admin: AccessContext, crm: Crm) -> None:
    view = await engine.views.create_view(admin, _create(crm))
    await engine.schema.delete_object_type(admin, crm.deal_type.id)
    with pytest.raises(NotFoundError):
        await engine.views.get_view(admin, view.id)
