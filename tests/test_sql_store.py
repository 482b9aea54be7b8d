"""SqlStore against a real PostgreSQL.

Runs the same manager code paths as the in-memory unit tests, plus the
SQL-only behaviour: filter pushdown, JSONB merge writes, default view
uniqueness and cascade deletes.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from composa.engine.models import (
    Action,
    AggregationType,
    Filter,
    FilterOperator,
    ModuleGrant,
    ObjectTypeCreate,
    RelationCreate,
    RelationDirection,
    SchemaRelationType,
    TypeRelationCreate,
    View,
    ViewCreate,
)
from composa.engine.models.permissions import AccessContext
from composa.engine.services import Engine, assemble_engine
from composa.engine.store.sql import SqlStore

from .engine.factories import Crm, create_deal, seed_crm

pytestmark = pytest.mark.integration


async def _seed_roles(store: SqlStore) -> None:
    admin = await store.create_role("admin", "Everything")
    await store.grant_action(admin, *(a.value for a in Action))
    await store.grant_module(ModuleGrant(role_id=admin, can_read=True, can_write=True, can_delete=True))
    await store.assign_role("admin", admin)

    viewer = await store.create_role("viewer")
    await store.grant_action(viewer, Action.OBJECT_READ, Action.DASHBOARD_VIEW)
    await store.grant_module(ModuleGrant(role_id=viewer, can_read=True))
    await store.assign_role("viewer", viewer)


@pytest.fixture
async def sql_store(session_factory: async_sessionmaker[AsyncSession]) -> SqlStore:
    store = SqlStore(session_factory)
    await _seed_roles(store)
    return store


@pytest.fixture
def sql_engine(sql_store: SqlStore) -> Engine:
    return assemble_engine(
        schema_store=sql_store,
        object_store=sql_store,
        permission_source=sql_store,
        view_store=sql_store,
        default_page_size=10,
        max_page_size=100,
    )


@pytest.fixture
async def admin(sql_engine: Engine) -> AccessContext:
    return await sql_engine.access("admin")


@pytest.fixture
async def crm(sql_engine: Engine, admin: AccessContext) -> Crm:
    return await seed_crm(sql_engine, admin)


async def test_migrations_applied(session_factory: async_sessionmaker[AsyncSession]) -> None:
    async with session_factory() as session:
        result = await session.execute(
            text("SELECT table_name FROM information_schema.tables WHERE table_schema = 'public'")
        )
        tables = {row[0] for row in result}
    assert {"modules", "object_types", "object_type_relations", "objects", "object_modules", "views"} <= tables
    assert "object_relations" in tables
    assert {"roles", "user_roles", "role_permissions", "role_module_permissions"} <= tables


async def test_access_context_from_tables(sql_engine: Engine) -> None:
    viewer = await sql_engine.access("viewer")
    assert viewer.actions == {"object:read", "dashboard:view"}
    assert list(viewer.grants.values())[0].can_read


async def test_schema_round_trip(sql_engine: Engine, crm: Crm) -> None:
    deal = await sql_engine.schema.get_module(crm.deal.id)
    assert deal.model_dump() == crm.deal.model_dump()
    detail = await sql_engine.schema.get_object_type(crm.deal_type.id)
    assert [(e.module.name, e.required, e.position) for e in detail.modules] == [
        ("identity", True, 0),
        ("deal", True, 1),
        ("notes", False, 2),
    ]


async def test_module_data_merge(sql_engine: Engine, admin: AccessContext, crm: Crm) -> None:
    obj = await create_deal(sql_engine, admin, crm, "Acme", amount=100)
    record = await sql_engine.objects.update_module_data(admin, obj.id, crm.deal.id, {"stage": "won"})

    assert record.data == {"stage": "won", "amount": 100}
    stored = await sql_engine.objects.get_object(admin, obj.id)
    assert stored.modules["deal"] == {"stage": "won", "amount": 100}


async def test_pushdown_filters_and_pagination(sql_engine: Engine, admin: AccessContext, crm: Crm) -> None:
    for i in range(12):
        await create_deal(sql_engine, admin, crm, f"Won {i}", stage="won", amount=i)
    await create_deal(sql_engine, admin, crm, "Lead")
    await create_deal(sql_engine, admin, crm, "100% ACME", stage="won")

    won = await sql_engine.views.create_view(
        admin,
        ViewCreate(
            object_type_id=crm.deal_type.id,
            name="Won",
            filters=[Filter(module="deal", field="stage", operator=FilterOperator.EQ, value="won")],
        ),
    )
    page_two = await sql_engine.query.evaluate(admin, won, page=2)
    assert page_two.total == 13
    assert len(page_two.objects) == 3

    literal = await sql_engine.views.create_view(
        admin,
        ViewCreate(
            object_type_id=crm.deal_type.id,
            name="Percent",
            filters=[Filter(module="identity", field="name", operator=FilterOperator.CONTAINS, value="0% acme")],
        ),
    )
    result = await sql_engine.query.evaluate(admin, literal)
    assert [o.display_name for o in result.objects] == ["100% ACME"]


async def test_default_view_is_unique(sql_store: SqlStore, sql_engine: Engine, admin: AccessContext, crm: Crm) -> None:
    first = await sql_engine.views.ensure_default_view(admin, crm.deal_type.id)
    now = datetime.now(UTC)
    racer = View(
        id="racing-default",
        object_type_id=crm.deal_type.id,
        name="All Deals",
        is_default=True,
        created_by="admin",
        created_at=now,
        updated_at=now,
    )
    assert (await sql_store.insert_default_view(racer)).id == first.id
    assert [v.id for v in await sql_engine.views.list_views(admin, crm.deal_type.id)] == [first.id]


async def test_aggregation(sql_engine: Engine, admin: AccessContext, crm: Crm) -> None:
    for amount in (500, 1000, 1500):
        await create_deal(sql_engine, admin, crm, f"Deal {amount}", amount=amount)
    viewer = await sql_engine.access("viewer")

    assert await sql_engine.aggregation.aggregate(viewer, "deal", "amount", AggregationType.SUM) == 3000
    counts = await sql_engine.aggregation.count_objects_by_type(viewer)
    assert [(c.name, c.count) for c in counts] == [("deal", 3)]


async def test_delete_object_cascades(sql_engine: Engine, admin: AccessContext, crm: Crm) -> None:
    a = await create_deal(sql_engine, admin, crm, "A")
    b = await create_deal(sql_engine, admin, crm, "B")
    await sql_engine.objects.create_relation(
        admin, RelationCreate(from_object_id=a.id, to_object_id=b.id, relation_type="partner", metadata={"since": 2020})
    )
    relations = await sql_engine.objects.list_relations(admin, b.id, RelationDirection.TO)
    assert [(r.from_object_id, r.metadata) for r in relations] == [(a.id, {"since": 2020})]

    await sql_engine.objects.delete_object(admin, a.id)

    assert await sql_engine.objects.list_relations(admin, b.id, RelationDirection.BOTH) == []
    assert await sql_engine.aggregation.aggregate(admin, "identity", "name", AggregationType.COUNT) == 1


async def test_type_relations_round_trip(sql_engine: Engine, admin: AccessContext, crm: Crm) -> None:
    account = await sql_engine.schema.create_object_type(admin, ObjectTypeCreate(name="account", display_name="Accounts"))
    body = TypeRelationCreate(
        source_type_id=account.id,
        target_type_id=crm.deal_type.id,
        relation_type=SchemaRelationType.ONE_TO_MANY,
        source_field_name="Deals",
        target_field_name="Account",
        metadata={"cascade": False},
    )
    relation = await sql_engine.schema.create_type_relation(admin, body)

    [listed] = await sql_engine.schema.list_type_relations(crm.deal_type.id)
    assert listed.id == relation.id
    assert listed.metadata == {"cascade": False}
    assert (listed.source_type_name, listed.target_type_name) == ("account", "deal")

    toggled = await sql_engine.schema.set_type_relation_active(admin, relation.id, False)
    assert not toggled.is_active
    assert not (await sql_engine.schema.list_type_relations())[0].is_active

    await sql_engine.schema.delete_object_type(admin, account.id)
    assert await sql_engine.schema.list_type_relations() == []


async def test_dashboard_recent_objects(sql_engine: Engine, admin: AccessContext, crm: Crm) -> None:
    for name in ("First", "Second", "Third"):
        await create_deal(sql_engine, admin, crm, name)

    stats = await sql_engine.aggregation.dashboard_stats(admin, recent_limit=2)
    assert stats.total_objects == 3
    assert [o.display_name for o in stats.recent_objects] == ["Third", "Second"]
