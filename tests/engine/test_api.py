"""HTTP surface: routing, status codes and the error envelope."""

from __future__ import annotations

from httpx import AsyncClient
from loguru import logger

from composa.engine.models.api import ObjectTypeCreate
from composa.engine.models.permissions import AccessContext
from composa.engine.services import Engine

from .factories import Crm, create_deal

ADMIN = {"X-Principal-Id": "admin"}
VIEWER = {"X-Principal-Id": "viewer"}


async def test_health(client: AsyncClient) -> None:
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


async def test_missing_principal_is_unauthorized(client: AsyncClient) -> None:
    resp = await client.get("/api/modules/list")
    assert resp.status_code == 401
    assert resp.json()["code"] == "UNAUTHORIZED"


async def test_schema_and_object_lifecycle(client: AsyncClient) -> None:
    resp = await client.post(
        "/api/modules/create",
        headers=ADMIN,
        json={
            "name": "contact",
            "display_name": "Contact",
            "fields": [
                {"key": "name", "label": "Name", "type": "text", "required": True},
                {"key": "score", "label": "Score", "type": "number"},
            ],
        },
    )
    assert resp.status_code == 201
    module = resp.json()

    resp = await client.post(
        "/api/object-types/create",
        headers=ADMIN,
        json={"name": "person", "display_name": "People", "modules": [{"module_id": module["id"]}]},
    )
    assert resp.status_code == 201
    person = resp.json()
    assert [e["module"]["name"] for e in person["modules"]] == ["contact"]

    resp = await client.post(
        "/api/objects/create",
        headers=ADMIN,
        json={"object_type_id": person["id"], "modules": {"contact": {"name": "Ada", "score": "7"}}},
    )
    assert resp.status_code == 201
    obj = resp.json()
    assert obj["display_name"] == "Ada"
    assert obj["modules"]["contact"]["score"] == 7

    resp = await client.post(
        f"/api/objects/{obj['id']}/modules/{module['id']}/update", headers=ADMIN, json={"data": {"score": 9}}
    )
    assert resp.status_code == 200
    assert resp.json()["data"] == {"name": "Ada", "score": 9}

    resp = await client.get(f"/api/objects/{obj['id']}/get", headers=VIEWER)
    assert resp.status_code == 200
    assert resp.json()["modules"]["contact"]["score"] == 9

    resp = await client.post(f"/api/objects/{obj['id']}/delete", headers=ADMIN)
    assert resp.status_code == 204
    resp = await client.get(f"/api/objects/{obj['id']}/get", headers=ADMIN)
    assert resp.status_code == 404


async def test_error_envelope(client: AsyncClient, crm: Crm) -> None:
    resp = await client.get("/api/modules/missing/get", headers=ADMIN)
    assert resp.status_code == 404
    assert resp.json() == {"code": "NOT_FOUND", "message": "Module 'missing' not found"}

    resp = await client.post(
        "/api/objects/create",
        headers=ADMIN,
        json={"object_type_id": crm.deal_type.id, "modules": {"identity": {}, "deal": {}}},
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION"

    resp = await client.post(
        "/api/objects/create",
        headers=VIEWER,
        json={"object_type_id": crm.deal_type.id, "modules": {"identity": {"name": "X"}, "deal": {}}},
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "FORBIDDEN"


async def test_view_evaluation(client: AsyncClient, engine: Engine, admin: AccessContext, crm: Crm) -> None:
    for name, stage, amount in (("A", "won", 10), ("B", "won", 30), ("C", "lost", 20)):
        await create_deal(engine, admin, crm, name, stage=stage, amount=amount)

    resp = await client.post(
        "/api/views/create",
        headers=ADMIN,
        json={
            "object_type_id": crm.deal_type.id,
            "name": "Won board",
            "layout_type": "kanban",
            "filters": [{"module": "deal", "field": "stage", "operator": "eq", "value": "won"}],
            "sorts": [{"module": "deal", "field": "amount", "direction": "desc"}],
        },
    )
    assert resp.status_code == 201
    view = resp.json()

    resp = await client.post(f"/api/views/{view['id']}/evaluate", headers=VIEWER, json={"page": 1, "page_size": 1})
    assert resp.status_code == 200
    result = resp.json()
    assert result["total"] == 2
    assert [o["display_name"] for o in result["objects"]] == ["B"]
    assert result["board"]["field"] == "stage"

    resp = await client.get("/api/views/list", headers=VIEWER, params={"object_type_id": crm.deal_type.id})
    assert [v["name"] for v in resp.json()] == ["All Deals", "Won board"]


async def test_reports(client: AsyncClient, engine: Engine, admin: AccessContext, crm: Crm) -> None:
    await create_deal(engine, admin, crm, "A", amount=1000)
    await create_deal(engine, admin, crm, "B", amount=2000, stage="won")

    resp = await client.post(
        "/api/reports/aggregate", headers=VIEWER, json={"module": "deal", "field": "amount", "agg_type": "sum"}
    )
    assert resp.status_code == 200
    assert resp.json()["display"] == "3,000"

    resp = await client.post("/api/reports/count-by", headers=VIEWER, json={"module": "deal", "field": "stage"})
    assert {e["value"]: e["count"] for e in resp.json()} == {"lead": 1, "won": 1}

    resp = await client.get("/api/reports/object-counts", headers=VIEWER)
    assert resp.json()[0]["count"] == 2


async def test_request_id_is_echoed(client: AsyncClient) -> None:
    resp = await client.get("/api/health", headers={"X-Request-ID": "req-42"})
    assert resp.headers["X-Request-ID"] == "req-42"

    resp = await client.get("/api/health")
    assert len(resp.headers["X-Request-ID"]) == 32


async def test_log_records_carry_request_context(client: AsyncClient) -> None:
    records: list = []
    sink_id = logger.add(records.append, level="DEBUG")
    try:
        resp = await client.get("/api/modules/list", headers={**ADMIN, "X-Request-ID": "req-7"})
    finally:
        logger.remove(sink_id)
    assert resp.status_code == 200

    extras = [m.record["extra"] for m in records]
    assert {"request_id": "req-7", "principal": "admin"} in extras


async def test_type_relation_lifecycle(client: AsyncClient, engine: Engine, admin: AccessContext, crm: Crm) -> None:
    account = await engine.schema.create_object_type(admin, ObjectTypeCreate(name="account", display_name="Accounts"))

    resp = await client.post(
        "/api/object-types/relations/create",
        headers=ADMIN,
        json={
            "source_type_id": account.id,
            "target_type_id": crm.deal_type.id,
            "relation_type": "one_to_many",
            "source_field_name": "Deals",
            "target_field_name": "Account",
        },
    )
    assert resp.status_code == 201
    relation = resp.json()
    assert relation["is_active"] is True
    assert relation["metadata"] == {}

    resp = await client.get(
        "/api/object-types/relations/list", headers=VIEWER, params={"object_type_id": crm.deal_type.id}
    )
    assert resp.status_code == 200
    [listed] = resp.json()
    assert listed["source_type_name"] == "account"
    assert listed["target_type_display_name"] == "Deals"

    resp = await client.post(
        f"/api/object-types/relations/{relation['id']}/toggle", headers=ADMIN, json={"is_active": False}
    )
    assert resp.json()["is_active"] is False

    resp = await client.post(f"/api/object-types/relations/{relation['id']}/delete", headers=ADMIN)
    assert resp.status_code == 204
    resp = await client.post(f"/api/object-types/relations/{relation['id']}/delete", headers=ADMIN)
    assert resp.status_code == 404


async def test_dashboard(client: AsyncClient, engine: Engine, admin: AccessContext, crm: Crm) -> None:
    await create_deal(engine, admin, crm, "First", amount=1)
    await create_deal(engine, admin, crm, "Second", amount=2)

    resp = await client.get("/api/reports/dashboard", headers=VIEWER, params={"recent_limit": 1})
    assert resp.status_code == 200
    stats = resp.json()
    assert stats["total_objects"] == 2
    assert stats["object_counts"][0]["icon"] == "Box"
    assert [o["display_name"] for o in stats["recent_objects"]] == ["Second"]
    assert stats["recent_objects"][0]["object_type"] == "deal"


async def test_evaluate_with_search(client: AsyncClient, engine: Engine, admin: AccessContext, crm: Crm) -> None:
    await create_deal(engine, admin, crm, "Acme Corp", stage="lead")
    await create_deal(engine, admin, crm, "Globex", stage="won")
    view = await engine.views.ensure_default_view(admin, crm.deal_type.id)

    resp = await client.post(f"/api/views/{view.id}/evaluate", headers=VIEWER, json={"search": "acme"})
    assert resp.status_code == 200
    result = resp.json()
    assert result["total"] == 1
    assert [o["display_name"] for o in result["objects"]] == ["Acme Corp"]
