"""Filter binding and type-aware predicate evaluation.

Filters name a module and a field by key.  Binding resolves both against an
object type's composition so operators can be interpreted with the field's
declared type (``gt`` on a ``date`` compares instants, ``eq`` on a
``multiselect`` tests membership, ...).

Value-requiring operators whose value is ``None`` are no-ops: they are
dropped at bind time and never reach a store or the in-core evaluator.
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any

from composa.engine.errors import EngineValidationError
from composa.engine.models.enums import FieldType, FilterOperator
from composa.engine.models.views import BoundFilter, Filter
from composa.engine.values import is_empty, stringify, to_bool, to_instant, to_number

if TYPE_CHECKING:
    from composa.engine.models.objects import ObjectWithModules
    from composa.engine.models.schema import CompositionEntry, FieldDef, Module

FieldMap = dict[tuple[str, str], tuple["Module", "FieldDef"]]

VALUE_OPERATORS = frozenset({
    FilterOperator.EQ,
    FilterOperator.NEQ,
    FilterOperator.CONTAINS,
    FilterOperator.GT,
    FilterOperator.LT,
    FilterOperator.GTE,
    FilterOperator.LTE,
    FilterOperator.IN,
})

_ORDERING: dict[FilterOperator, Callable[[Any, Any], bool]] = {
    FilterOperator.GT: operator.gt,
    FilterOperator.LT: operator.lt,
    FilterOperator.GTE: operator.ge,
    FilterOperator.LTE: operator.le,
}

_UNORDERED_TYPES = frozenset({FieldType.BOOLEAN, FieldType.MULTISELECT})
_TEMPORAL_TYPES = frozenset({FieldType.DATE, FieldType.DATETIME})

# ---------------------------------------------------------------------------
# Binding
# ---------------------------------------------------------------------------


def build_field_map(composition: Iterable[CompositionEntry]) -> FieldMap:
    field_map: FieldMap = {}
    for entry in composition:
        for field in entry.module.fields:
            field_map[(entry.module.name, field.key)] = (entry.module, field)
    return field_map


def resolve_field(field_map: FieldMap, module_name: str, field_key: str) -> tuple[Module, FieldDef]:
    try:
        return field_map[(module_name, field_key)]
    except KeyError:
        msg = f"Unknown field '{module_name}.{field_key}' for this object type"
        raise EngineValidationError(msg) from None


def is_noop(flt: Filter) -> bool:
    return flt.operator in VALUE_OPERATORS and flt.value is None


def bind_filter(field_map: FieldMap, flt: Filter) -> BoundFilter:
    """Resolve *flt* and check its operator against the field type."""
    module, field = resolve_field(field_map, flt.module, flt.field)
    if flt.operator == FilterOperator.IN and flt.value is not None and not isinstance(flt.value, list):
        msg = f"Filter on '{flt.module}.{flt.field}': operator 'in' expects a list value"
        raise EngineValidationError(msg)
    if flt.operator in _ORDERING and field.type in _UNORDERED_TYPES:
        msg = f"Filter on '{flt.module}.{flt.field}': operator '{flt.operator}' is not supported for {field.type} fields"
        raise EngineValidationError(msg)
    return BoundFilter(filter=flt, module=module, field=field)


def bind_filters(field_map: FieldMap, filters: Sequence[Filter]) -> list[BoundFilter]:
    """Bind every filter, dropping value-requiring filters without a value."""
    bound = [bind_filter(field_map, f) for f in filters]
    return [b for b in bound if not is_noop(b.filter)]


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def values_equal(field: FieldDef, actual: Any, expected: Any) -> bool:
    match field.type:
        case FieldType.NUMBER:
            left, right = to_number(actual), to_number(expected)
            if left is not None and right is not None:
                return left == right
        case FieldType.BOOLEAN:
            left, right = to_bool(actual), to_bool(expected)
            if left is not None and right is not None:
                return left == right
        case FieldType.DATE | FieldType.DATETIME:
            left, right = to_instant(actual), to_instant(expected)
            if left is not None and right is not None:
                return left == right
        case FieldType.MULTISELECT if isinstance(actual, list):
            return any(stringify(item) == stringify(expected) for item in actual)
    return stringify(actual) == stringify(expected)


def _compare(field: FieldDef, op: FilterOperator, actual: Any, expected: Any) -> bool:
    if field.type in _TEMPORAL_TYPES:
        left, right = to_instant(actual), to_instant(expected)
    else:
        left, right = to_number(actual), to_number(expected)
    if left is None or right is None:
        return False
    return _ORDERING[op](left, right)


def evaluate_value(bound: BoundFilter, actual: Any) -> bool:
    """Apply one bound filter to a single stored value."""
    op, expected, field = bound.operator, bound.value, bound.field
    if op in VALUE_OPERATORS and expected is None:
        return True
    match op:
        case FilterOperator.IS_EMPTY:
            return is_empty(actual)
        case FilterOperator.IS_NOT_EMPTY:
            return not is_empty(actual)
        case FilterOperator.EQ:
            return values_equal(field, actual, expected)
        case FilterOperator.NEQ:
            return not values_equal(field, actual, expected)
        case FilterOperator.CONTAINS:
            return stringify(expected).casefold() in stringify(actual).casefold()
        case FilterOperator.IN:
            return any(values_equal(field, actual, candidate) for candidate in expected)
        case _:
            return _compare(field, op, actual, expected)


def matches(bound: BoundFilter, row: ObjectWithModules) -> bool:
    return evaluate_value(bound, row.value(bound.module.name, bound.field.key))


def matches_all(bounds: Iterable[BoundFilter], row: ObjectWithModules) -> bool:
    return all(matches(b, row) for b in bounds)


# ---------------------------------------------------------------------------
# Free-text search
# ---------------------------------------------------------------------------

SEARCHABLE_TYPES = frozenset({FieldType.TEXT, FieldType.URL, FieldType.SELECT})


def searchable_fields(composition: Iterable[CompositionEntry]) -> list[tuple[Module, FieldDef]]:
    """Text, url and select fields of *composition*, in composition order."""
    return [(e.module, f) for e in composition for f in e.module.fields if f.type in SEARCHABLE_TYPES]


def matches_search(term: str, fields: Sequence[tuple[Module, FieldDef]], row: ObjectWithModules) -> bool:
    """Case-insensitive substring match of *term* against any searchable value.

    Select fields match on the stored value or on the option label.
    """
    needle = term.casefold()
    for module, field in fields:
        value = row.value(module.name, field.key)
        if is_empty(value):
            continue
        candidates = [stringify(value)]
        if field.type == FieldType.SELECT:
            option = field.option(value)
            if option is not None:
                candidates.append(option.label)
        if any(needle in c.casefold() for c in candidates):
            return True
    return False
