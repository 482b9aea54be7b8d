"""Dashboard aggregation endpoints.  All require ``dashboard:view``."""

from __future__ import annotations

from fastapi import APIRouter, Query

from composa.engine.deps import Access, Services
from composa.engine.models.aggregation import AggregateResult, CountByEntry, DashboardStats, TypeCount
from composa.engine.models.api import AggregateRequest, CountByRequest

router = APIRouter(prefix="/reports", tags=["reports"])


@router.post("/aggregate")
async def aggregate(body: AggregateRequest, engine: Services, ctx: Access) -> AggregateResult:
    return await engine.aggregation.summarize(ctx, body.module, body.field, body.agg_type, body.object_type_id)


@router.post("/count-by")
async def count_by(body: CountByRequest, engine: Services, ctx: Access) -> list[CountByEntry]:
    return await engine.aggregation.count_by(ctx, body.module, body.field, body.object_type_id)


@router.get("/object-counts")
async def object_counts(engine: Services, ctx: Access) -> list[TypeCount]:
    return await engine.aggregation.count_objects_by_type(ctx)


@router.get("/dashboard")
async def dashboard(
    engine: Services, ctx: Access, recent_limit: int = Query(default=10, ge=1, le=100)
) -> DashboardStats:
    """Object counts per type, their total and the newest objects the caller can read."""
    return await engine.aggregation.dashboard_stats(ctx, recent_limit)
