"""Kanban grouping.

The grouping field must be a ``select`` field.  Each declared option becomes
a bucket, in declaration order, followed by a single uncategorized bucket
for values that are empty or not among the options.  Every row lands in
exactly one bucket.

When a view names no grouping field, the first select field of the
composition is used: modules in composition order, then fields in
declaration order.
A field key without a module resolves to the first module, in composition
order, whose field of that key is a select field.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from composa.engine.errors import EngineValidationError, KanbanUnavailableError
from composa.engine.models.enums import FieldType
from composa.engine.models.views import KanbanBoard, KanbanBucket

if TYPE_CHECKING:
    from composa.engine.models.objects import ObjectWithModules
    from composa.engine.models.schema import CompositionEntry, FieldDef, Module
    from composa.engine.models.views import View

UNCATEGORIZED_LABEL = "Uncategorized"


def _first_select(modules: list[Module]) -> tuple[Module, FieldDef] | None:
    for module in modules:
        for field in module.fields:
            if field.type == FieldType.SELECT:
                return module, field
    return None


def resolve_grouping_field(view: View, composition: list[CompositionEntry]) -> tuple[Module, FieldDef]:
    """Pick the grouping field for *view*.

    Raises ``EngineValidationError`` when the configured field is unknown or
    not a select field, and ``KanbanUnavailableError`` when nothing is
    configured and the composition has no select field at all.
    """
    modules = [entry.module for entry in composition]
    module_name, field_key = view.kanban_module_name, view.kanban_field_key

    if module_name:
        candidates = [m for m in modules if m.name == module_name]
        if not candidates:
            msg = f"Kanban module '{module_name}' is not part of this object type"
            raise EngineValidationError(msg)
    elif field_key:
        candidates = [m for m in modules if m.field(field_key) is not None]
    else:
        found = _first_select(modules)
        if found is None:
            raise KanbanUnavailableError(view.object_type_id)
        return found

    if not field_key:
        found = _first_select(candidates)
        if found is None:
            msg = f"Kanban module '{module_name}' has no select field"
            raise EngineValidationError(msg)
        return found

    matches = [(m, m.field(field_key)) for m in candidates if m.field(field_key) is not None]
    if not matches:
        msg = f"Unknown kanban field '{field_key}'"
        raise EngineValidationError(msg)
    for module, field in matches:
        if field.type == FieldType.SELECT:
            return module, field
    module, field = matches[0]
    msg = f"Kanban field '{module.name}.{field_key}' must be a select field, not {field.type}"
    raise EngineValidationError(msg)


def build_board(rows: list[ObjectWithModules], module: Module, field: FieldDef) -> KanbanBoard:
    buckets = [KanbanBucket(value=o.value, label=o.label, color=o.color) for o in field.options or ()]
    by_value = {b.value: b for b in buckets}
    uncategorized = KanbanBucket(value=None, label=UNCATEGORIZED_LABEL)

    for row in rows:
        value = row.value(module.name, field.key)
        bucket = by_value.get(value) if isinstance(value, str) else None
        (bucket or uncategorized).object_ids.append(row.id)

    return KanbanBoard(module=module.name, field=field.key, buckets=[*buckets, uncategorized])
