"""Aggregations over one module field.

The population is every object carrying the module, across all object types,
unless the caller scopes it to one type.

- ``sum`` / ``avg`` / ``min`` / ``max`` only see values that read as numbers.
  Anything else, including booleans, is skipped rather than counted as zero.
- ``avg`` divides by the number of contributing values.
- ``count`` counts every non-null value, numeric or not.
- An empty population yields ``0`` for every aggregation.

``count_by`` groups on the raw string form of the value.  Null and missing
values form one group keyed ``None``, distinct from the ``""`` group.
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any

from loguru import logger

from composa.engine.errors import EngineValidationError, ForbiddenError
from composa.engine.models.aggregation import AggregateResult, CountByEntry, DashboardStats, RecentObject, TypeCount
from composa.engine.models.enums import Access, Action, AggregationType, FieldType
from composa.engine.permissions import can_access, read_scope, require_action, require_module_access
from composa.engine.values import (
    display_name,
    format_number,
    format_value,
    normalize_number,
    raw_group_key,
    to_number,
)

if TYPE_CHECKING:
    from composa.engine.managers.schema import SchemaRegistry
    from composa.engine.models.permissions import AccessContext
    from composa.engine.models.schema import FieldDef, Module
    from composa.engine.store.base import ObjectStore

EMPTY_GROUP_LABEL = "(empty)"


def compute(agg_type: AggregationType, values: list[Any]) -> int | float:
    """Apply *agg_type* to raw stored values."""
    if agg_type == AggregationType.COUNT:
        return sum(1 for v in values if v is not None)

    numbers = [n for n in (to_number(v) for v in values) if n is not None]
    if not numbers:
        return 0
    match agg_type:
        case AggregationType.SUM:
            result = sum(numbers)
        case AggregationType.AVG:
            result = sum(numbers) / len(numbers)
        case AggregationType.MIN:
            result = min(numbers)
        case AggregationType.MAX:
            result = max(numbers)
    return normalize_number(result)


def distribution(values: list[Any]) -> Counter[str | None]:
    return Counter(raw_group_key(v) for v in values)


class AggregationEngine:
    def __init__(self, schema: SchemaRegistry, objects: ObjectStore) -> None:
        self._schema = schema
        self._objects = objects

    async def _authorize(
        self, ctx: AccessContext, module_name: str, field_key: str, object_type_id: str | None
    ) -> tuple[Module, FieldDef]:
        require_action(ctx, Action.DASHBOARD_VIEW)
        module = await self._schema.get_module_by_name(module_name)
        field = module.field(field_key)
        if field is None:
            msg = f"Module '{module_name}' has no field '{field_key}'"
            raise EngineValidationError(msg)
        if object_type_id is not None:
            await self._schema.resolve_composition(object_type_id)
        require_module_access(ctx, module.id, object_type_id, Access.READ, module_name=module.name)
        return module, field

    async def _values(self, module: Module, field_key: str, object_type_id: str | None) -> list[Any]:
        records = await self._objects.scan_module_data(module.id, object_type_id)
        return [r.data.get(field_key) for r in records]

    async def aggregate(
        self,
        ctx: AccessContext,
        module_name: str,
        field_key: str,
        agg_type: AggregationType,
        object_type_id: str | None = None,
    ) -> int | float:
        module, _ = await self._authorize(ctx, module_name, field_key, object_type_id)
        values = await self._values(module, field_key, object_type_id)
        result = compute(agg_type, values)
        logger.debug("Aggregate {}({}.{}) over {} rows = {}", agg_type, module_name, field_key, len(values), result)
        return result

    async def summarize(
        self,
        ctx: AccessContext,
        module_name: str,
        field_key: str,
        agg_type: AggregationType,
        object_type_id: str | None = None,
    ) -> AggregateResult:
        """Like :meth:`aggregate`, with the value formatted for display.

        Counts are plain integers.  Other aggregations of a number field are
        rendered through the field definition.
        """
        module, field = await self._authorize(ctx, module_name, field_key, object_type_id)
        value = compute(agg_type, await self._values(module, field_key, object_type_id))
        if agg_type == AggregationType.COUNT or field.type != FieldType.NUMBER:
            display = format_number(float(value))
        else:
            display = format_value(value, field)
        return AggregateResult(
            module=module_name,
            field=field_key,
            agg_type=agg_type,
            object_type_id=object_type_id,
            value=value,
            display=display,
        )

    async def count_by(
        self,
        ctx: AccessContext,
        module_name: str,
        field_key: str,
        object_type_id: str | None = None,
    ) -> list[CountByEntry]:
        """Value distribution of one field, largest groups first."""
        module, field = await self._authorize(ctx, module_name, field_key, object_type_id)
        values = await self._values(module, field_key, object_type_id)
        samples = {raw_group_key(v): v for v in values}
        entries = [
            CountByEntry(
                value=key,
                label=EMPTY_GROUP_LABEL if key is None else (format_value(samples[key], field) or key),
                count=count,
            )
            for key, count in distribution(values).items()
        ]
        entries.sort(key=lambda e: -e.count)
        return entries

    async def count_objects_by_type(self, ctx: AccessContext) -> list[TypeCount]:
        """Number of objects per object type, for dashboard overviews."""
        require_action(ctx, Action.DASHBOARD_VIEW)
        object_types = await self._schema.list_object_types()
        counts = await self._objects.count_objects_by_type()
        return [
            TypeCount(
                object_type_id=t.id,
                name=t.name,
                display_name=t.display_name,
                icon=t.icon,
                color=t.color,
                count=counts.get(t.id, 0),
            )
            for t in object_types
        ]

    async def dashboard_stats(self, ctx: AccessContext, recent_limit: int = 10) -> DashboardStats:
        """Per-type counts, their total and the newest objects.

        Recent objects follow the caller's read scope; a caller without any
        object read permission gets counts only.  Display names are derived
        from the modules the caller can read.
        """
        counts = await self.count_objects_by_type(ctx)
        total = sum(c.count for c in counts)
        try:
            owned_by = read_scope(ctx)
        except ForbiddenError:
            return DashboardStats(object_counts=counts, total_objects=total)

        headers = await self._objects.recent_objects(recent_limit, owned_by=owned_by)
        type_names = {c.object_type_id: c.name for c in counts}
        readable: dict[str, list[Module]] = {}
        for type_id in {h.object_type_id for h in headers}:
            composition = await self._schema.resolve_composition(type_id)
            readable[type_id] = [e.module for e in composition if can_access(ctx, e.module.id, type_id, Access.READ)]

        data: dict[tuple[str, str], dict[str, Any]] = {}
        if headers:
            for record in await self._objects.fetch_module_data([h.id for h in headers]):
                data[(record.object_id, record.module_id)] = record.data

        recent = []
        for header in headers:
            modules = {
                m.name: data[(header.id, m.id)] for m in readable[header.object_type_id] if (header.id, m.id) in data
            }
            recent.append(
                RecentObject(
                    id=header.id,
                    object_type_id=header.object_type_id,
                    object_type=type_names.get(header.object_type_id, ""),
                    display_name=display_name(modules),
                    created_at=header.created_at,
                )
            )
        return DashboardStats(object_counts=counts, total_objects=total, recent_objects=recent)
