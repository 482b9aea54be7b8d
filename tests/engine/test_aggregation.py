"""Aggregations and value distributions."""

from __future__ import annotations

import pytest

from composa.engine.errors import EngineValidationError, ForbiddenError, NotFoundError, StoreError
from composa.engine.models import Action, AggregationType, ModuleGrant, ObjectTypeCreate
from composa.engine.models.permissions import AccessContext
from composa.engine.query.aggregation import EMPTY_GROUP_LABEL, compute
from composa.engine.services import Engine, build_memory_engine
from composa.engine.store.memory import MemoryStore
from composa.engine.values import UNNAMED_OBJECT

from .factories import Crm, FlakyStore, create_deal, seed_crm, seed_roles


@pytest.mark.parametrize(
    ("agg_type", "expected"),
    [
        (AggregationType.SUM, 3000),
        (AggregationType.AVG, 1000),
        (AggregationType.MIN, 500),
        (AggregationType.MAX, 1500),
        (AggregationType.COUNT, 5),
    ],
)
def test_compute_skips_non_numeric(agg_type: AggregationType, expected: float) -> None:
    assert compute(agg_type, [500, "1000", 1500.0, "n/a", True, None]) == expected


@pytest.mark.parametrize("agg_type", list(AggregationType))
def test_compute_empty_is_zero(agg_type: AggregationType) -> None:
    assert compute(agg_type, []) == 0


async def test_sum_and_count_over_deals(engine: Engine, admin: AccessContext, viewer: AccessContext, crm: Crm) -> None:
    for amount in (500, 1000, 1500):
        await create_deal(engine, admin, crm, f"Deal {amount}", amount=amount)

    assert await engine.aggregation.aggregate(viewer, "deal", "amount", AggregationType.SUM) == 3000
    assert await engine.aggregation.aggregate(viewer, "deal", "amount", AggregationType.COUNT) == 3


async def test_avg_ignores_unreadable_values(
    engine: Engine, store: MemoryStore, admin: AccessContext, viewer: AccessContext, crm: Crm
) -> None:
    for amount in (500, 1000, 1500):
        await create_deal(engine, admin, crm, f"Deal {amount}", amount=amount)
    for raw in ("n/a", True):
        bad = await create_deal(engine, admin, crm, "Imported")
        await store.upsert_module_data(bad.id, crm.deal.id, {"amount": raw})

    assert await engine.aggregation.aggregate(viewer, "deal", "amount", AggregationType.AVG) == 1000
    assert await engine.aggregation.aggregate(viewer, "deal", "amount", AggregationType.COUNT) == 5


async def test_summarize_formats_value(engine: Engine, admin: AccessContext, viewer: AccessContext, crm: Crm) -> None:
    await create_deal(engine, admin, crm, "Big", amount=1250000)
    await create_deal(engine, admin, crm, "Small", amount=0.5)

    result = await engine.aggregation.summarize(
        viewer, "deal", "amount", AggregationType.SUM, object_type_id=crm.deal_type.id
    )
    assert result.value == 1250000.5
    assert result.display == "1,250,000.50"


async def test_empty_population_is_zero(engine: Engine, viewer: AccessContext, crm: Crm) -> None:
    assert await engine.aggregation.aggregate(viewer, "deal", "amount", AggregationType.MAX) == 0


async def test_count_by_groups_raw_values(
    engine: Engine, store: MemoryStore, admin: AccessContext, viewer: AccessContext, crm: Crm
) -> None:
    await create_deal(engine, admin, crm, "One")
    await create_deal(engine, admin, crm, "Two")
    await create_deal(engine, admin, crm, "Three", stage="won")
    blank = await create_deal(engine, admin, crm, "Blank")
    await store.upsert_module_data(blank.id, crm.deal.id, {})

    entries = await engine.aggregation.count_by(viewer, "deal", "stage")

    assert entries[0].value == "lead"
    assert {(e.value, e.label, e.count) for e in entries} == {
        ("lead", "Lead", 2),
        ("won", "Won", 1),
        (None, EMPTY_GROUP_LABEL, 1),
    }


async def test_object_counts_per_type(engine: Engine, admin: AccessContext, viewer: AccessContext, crm: Crm) -> None:
    await create_deal(engine, admin, crm, "One")
    await create_deal(engine, admin, crm, "Two")

    counts = await engine.aggregation.count_objects_by_type(viewer)
    assert [(c.name, c.display_name, c.count) for c in counts] == [("deal", "Deals", 2)]


async def test_requires_dashboard_view(engine: Engine, member: AccessContext, crm: Crm) -> None:
    with pytest.raises(ForbiddenError):
        await engine.aggregation.aggregate(member, "deal", "amount", AggregationType.SUM)
    with pytest.raises(ForbiddenError):
        await engine.aggregation.count_objects_by_type(member)


async def test_unknown_module_or_field(engine: Engine, viewer: AccessContext, crm: Crm) -> None:
    with pytest.raises(NotFoundError):
        await engine.aggregation.aggregate(viewer, "nope", "amount", AggregationType.SUM)
    with pytest.raises(EngineValidationError, match="no field 'nope'"):
        await engine.aggregation.count_by(viewer, "deal", "nope")


async def test_summarize_count_is_a_plain_count(
    engine: Engine, admin: AccessContext, viewer: AccessContext, crm: Crm
) -> None:
    for amount in (500, 1000, 1500):
        await create_deal(engine, admin, crm, f"Deal {amount}", amount=amount, stage="won")

    count = await engine.aggregation.summarize(viewer, "deal", "stage", AggregationType.COUNT)
    assert (count.value, count.display) == (3, "3")

    avg = await engine.aggregation.summarize(viewer, "deal", "amount", AggregationType.AVG)
    assert (avg.value, avg.display) == (1000, "1,000")


@pytest.fixture
async def admin_store_error() -> tuple[FlakyStore, Engine, AccessContext]:
    store = FlakyStore()
    seed_roles(store)
    engine = build_memory_engine(store, default_page_size=10, max_page_size=100)
    admin = await engine.access("admin")
    crm = await seed_crm(engine, admin)
    await create_deal(engine, admin, crm, "Acme", amount=10)
    store.failing_module_id = crm.deal.id
    return store, engine, admin


async def test_failed_scan_fails_aggregation(admin_store_error: tuple[FlakyStore, Engine, AccessContext]) -> None:
    store, engine, admin = admin_store_error

    with pytest.raises(StoreError) as exc_info:
        await engine.aggregation.aggregate(admin, "deal", "amount", AggregationType.SUM)
    assert exc_info.value is store.error

    with pytest.raises(StoreError) as exc_info:
        await engine.aggregation.summarize(admin, "deal", "amount", AggregationType.SUM)
    assert exc_info.value is store.error


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


async def test_dashboard_stats(engine: Engine, admin: AccessContext, viewer: AccessContext, crm: Crm) -> None:
    first = await create_deal(engine, admin, crm, "First")
    second = await create_deal(engine, admin, crm, "Second")
    await engine.schema.create_object_type(admin, ObjectTypeCreate(name="account", display_name="Accounts", icon="Building"))

    stats = await engine.aggregation.dashboard_stats(viewer)

    assert stats.total_objects == 2
    assert [(c.name, c.icon, c.count) for c in stats.object_counts] == [("account", "Building", 0), ("deal", "Box", 2)]
    assert [(o.id, o.display_name, o.object_type) for o in stats.recent_objects] == [
        (second.id, "Second", "deal"),
        (first.id, "First", "deal"),
    ]


async def test_dashboard_recent_limit(engine: Engine, admin: AccessContext, viewer: AccessContext, crm: Crm) -> None:
    for i in range(4):
        await create_deal(engine, admin, crm, f"Deal {i}")
    stats = await engine.aggregation.dashboard_stats(viewer, recent_limit=2)
    assert stats.total_objects == 4
    assert [o.display_name for o in stats.recent_objects] == ["Deal 3", "Deal 2"]


async def test_dashboard_recent_follows_read_scope(
    engine: Engine, store: MemoryStore, admin: AccessContext, member: AccessContext, crm: Crm
) -> None:
    await create_deal(engine, admin, crm, "Admin deal")
    mine = await create_deal(engine, member, crm, "Member deal")
    store.grant_action("member", Action.DASHBOARD_VIEW)

    stats = await engine.aggregation.dashboard_stats(await engine.access("member"))
    assert stats.total_objects == 2
    assert [o.id for o in stats.recent_objects] == [mine.id]


async def test_dashboard_without_read_action_has_counts_only(
    engine: Engine, store: MemoryStore, admin: AccessContext, crm: Crm
) -> None:
    await create_deal(engine, admin, crm, "Acme")
    store.grant_action("analyst", Action.DASHBOARD_VIEW)
    store.assign_role("analyst", "analyst")

    stats = await engine.aggregation.dashboard_stats(await engine.access("analyst"))
    assert stats.total_objects == 1
    assert stats.recent_objects == []


async def test_dashboard_names_come_from_readable_modules(
    engine: Engine, store: MemoryStore, admin: AccessContext, crm: Crm
) -> None:
    await create_deal(engine, admin, crm, "Acme")
    store.grant_action("limited", Action.OBJECT_READ, Action.DASHBOARD_VIEW)
    store.grant_module(ModuleGrant(role_id="limited", module_id=crm.deal.id, can_read=True))
    store.assign_role("limited", "limited")

    stats = await engine.aggregation.dashboard_stats(await engine.access("limited"))
    assert [o.display_name for o in stats.recent_objects] == [UNNAMED_OBJECT]


async def test_dashboard_requires_dashboard_view(engine: Engine, member: AccessContext, crm: Crm) -> None:
    with pytest.raises(ForbiddenError):
        await engine.aggregation.dashboard_stats(member)
