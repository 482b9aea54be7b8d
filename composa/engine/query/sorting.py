"""Primary-key sorting over joined object rows.

Rows are first put in creation order (``created_at``, then ``id``); the
primary sort is then applied with a stable sort, so creation order breaks
every tie.  Rows whose value is missing or cannot be read as the field's
type go last in both directions.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from composa.engine.models.enums import FieldType, SortDirection
from composa.engine.values import collation_key, stringify, to_bool, to_instant, to_number

if TYPE_CHECKING:
    from composa.engine.models.objects import ObjectWithModules
    from composa.engine.models.schema import FieldDef
    from composa.engine.models.views import Sort


def _text_key(value: Any) -> tuple[str, str] | None:
    return None if value is None or value == "" else collation_key(stringify(value))


def key_function(field: FieldDef) -> Callable[[Any], Any | None]:
    """Map a stored value to a comparable key, or ``None`` when it has none."""
    match field.type:
        case FieldType.NUMBER:
            return to_number
        case FieldType.DATE | FieldType.DATETIME:
            return to_instant
        case FieldType.BOOLEAN:
            return to_bool
        case _:
            return _text_key


def creation_order(rows: list[ObjectWithModules]) -> list[ObjectWithModules]:
    return sorted(rows, key=lambda r: (r.created_at, r.id))


def sort_rows(rows: list[ObjectWithModules], sort: Sort | None, field: FieldDef | None) -> list[ObjectWithModules]:
    ordered = creation_order(rows)
    if sort is None or field is None:
        return ordered

    to_key = key_function(field)
    keyed = [(to_key(row.value(sort.module, sort.field)), row) for row in ordered]
    present = [(k, row) for k, row in keyed if k is not None]
    missing = [row for k, row in keyed if k is None]
    present.sort(key=lambda item: item[0], reverse=sort.direction == SortDirection.DESC)
    return [row for _, row in present] + missing
