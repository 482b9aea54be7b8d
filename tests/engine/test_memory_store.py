"""MemoryStore behaviour the managers rely on."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from composa.engine.models import (
    ModuleRecord,
    ObjectHeader,
    ObjectRelation,
    ObjectTypeRelation,
    RelationDirection,
    SchemaRelationType,
    View,
)
from composa.engine.store.memory import MemoryStore

BASE = datetime(2024, 1, 1, tzinfo=UTC)


def _header(object_id: str, minute: int = 0, *, type_id: str = "t", owner: str | None = None) -> ObjectHeader:
    at = BASE + timedelta(minutes=minute)
    return ObjectHeader(
        id=object_id, object_type_id=type_id, owner_id=owner, created_by="creator", created_at=at, updated_at=at
    )


def _record(object_id: str, module_id: str = "m", **data: object) -> ModuleRecord:
    return ModuleRecord(id=f"{object_id}-{module_id}", object_id=object_id, module_id=module_id, data=dict(data))


def _relation(rel_id: str, src: str, dst: str, minute: int = 0) -> ObjectRelation:
    return ObjectRelation(
        id=rel_id, from_object_id=src, to_object_id=dst, relation_type="linked", created_at=BASE + timedelta(minutes=minute)
    )


async def test_returned_rows_are_copies() -> None:
    store = MemoryStore()
    await store.insert_object(_header("a"), [_record("a", amount=1)])

    fetched = await store.fetch_module_data(["a"])
    fetched[0].data["amount"] = 99

    assert (await store.fetch_module_data(["a"], "m"))[0].data == {"amount": 1}


async def test_fetch_headers_orders_and_paginates() -> None:
    store = MemoryStore()
    for object_id, minute in (("c", 3), ("a", 1), ("b", 2), ("x", 0)):
        await store.insert_object(_header(object_id, minute, type_id="other" if object_id == "x" else "t"), [])

    headers, total = await store.fetch_headers("t", offset=1, limit=1)
    assert total == 3
    assert [h.id for h in headers] == ["b"]


async def test_fetch_headers_owned_by_checks_owner_or_creator() -> None:
    store = MemoryStore()
    await store.insert_object(_header("mine", 0, owner="p1"), [])
    await store.insert_object(_header("theirs", 1, owner="p2"), [])
    await store.insert_object(_header("created", 2), [])

    headers, total = await store.fetch_headers("t", owned_by="p1")
    assert (total, [h.id for h in headers]) == (1, ["mine"])
    headers, _ = await store.fetch_headers("t", owned_by="creator")
    assert {h.id for h in headers} == {"mine", "theirs", "created"}


async def test_upsert_bumps_updated_at() -> None:
    store = MemoryStore()
    await store.insert_object(_header("a"), [])
    record = await store.upsert_module_data("a", "m", {"x": 1})
    again = await store.upsert_module_data("a", "m", {"x": 2})

    assert record.id == again.id
    assert (await store.get_object("a")).updated_at > BASE


async def test_delete_object_cascades() -> None:
    store = MemoryStore()
    await store.insert_object(_header("a", 0), [_record("a")])
    await store.insert_object(_header("b", 1), [_record("b")])
    await store.insert_relation(_relation("r1", "a", "b"))

    await store.delete_object("a")

    assert await store.get_object("a") is None
    assert await store.fetch_module_data(["a"]) == []
    assert await store.get_relation("r1") is None
    assert await store.count_module_data("m") == 1


async def test_fetch_relations_by_direction() -> None:
    store = MemoryStore()
    await store.insert_relation(_relation("out", "a", "b", 0))
    await store.insert_relation(_relation("in", "c", "a", 1))

    assert [r.id for r in await store.fetch_relations("a", RelationDirection.FROM)] == ["out"]
    assert [r.id for r in await store.fetch_relations("a", RelationDirection.TO)] == ["in"]
    assert [r.id for r in await store.fetch_relations("a", RelationDirection.BOTH)] == ["out", "in"]


async def test_missing_module_count() -> None:
    store = MemoryStore()
    await store.insert_object(_header("a", 0), [_record("a")])
    await store.insert_object(_header("b", 1), [])
    assert await store.count_objects_missing_module("t", "m") == 1


async def test_insert_default_view_keeps_first() -> None:
    store = MemoryStore()

    def default(view_id: str) -> View:
        return View(
            id=view_id, object_type_id="t", name="All", is_default=True, created_by="u", created_at=BASE, updated_at=BASE
        )

    first = await store.insert_default_view(default("v1"))
    second = await store.insert_default_view(default("v2"))

    assert first.id == second.id == "v1"
    assert [v.id for v in await store.list_views("t")] == ["v1"]


async def test_recent_objects_newest_first_across_types() -> None:
    store = MemoryStore()
    await store.insert_object(_header("old", 0, type_id="t1"), [])
    await store.insert_object(_header("new", 2, type_id="t2"), [])
    await store.insert_object(_header("mid", 1, type_id="t1", owner="u1"), [])

    assert [h.id for h in await store.recent_objects(2)] == ["new", "mid"]
    assert [h.id for h in await store.recent_objects(10, owned_by="u1")] == ["mid"]


def _type_relation(rel_id: str, src: str, dst: str, minute: int = 0) -> ObjectTypeRelation:
    at = BASE + timedelta(minutes=minute)
    return ObjectTypeRelation(
        id=rel_id,
        source_type_id=src,
        target_type_id=dst,
        relation_type=SchemaRelationType.MANY_TO_MANY,
        source_field_name=f"to {dst}",
        target_field_name=f"from {src}",
        created_at=at,
        updated_at=at,
    )


async def test_type_relations_listing_and_type_cascade() -> None:
    store = MemoryStore()
    await store.insert_type_relation(_type_relation("r1", "a", "b", 0))
    await store.insert_type_relation(_type_relation("r2", "b", "c", 1))
    await store.insert_type_relation(_type_relation("r3", "c", "c", 2))

    assert [r.id for r in await store.list_type_relations()] == ["r3", "r2", "r1"]
    assert [r.id for r in await store.list_type_relations("b")] == ["r2", "r1"]

    await store.delete_object_type("c")
    assert [r.id for r in await store.list_type_relations()] == ["r1"]
