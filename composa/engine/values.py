"""Type-aware value helpers for schema-less module payloads.

Module data is stored as plain JSON.  Everything that needs to interpret a
value (filters, sorting, aggregation, display) goes through the coercions
here, driven by the :class:`FieldDef` of the field the value belongs to.

Coercions return ``None`` instead of raising when a value cannot be read as
the requested type; callers decide whether that excludes a row.
"""

from __future__ import annotations

import json
import math
import unicodedata
from collections.abc import Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Annotated, Any
from urllib.parse import urlsplit

from pydantic import AfterValidator, ConfigDict, Field, ValidationError, create_model

from composa.engine.errors import EngineValidationError
from composa.engine.models.enums import FieldType

if TYPE_CHECKING:
    from composa.engine.models.schema import FieldDef, Module

_TRUE_STRINGS = frozenset({"true", "1", "yes"})
_FALSE_STRINGS = frozenset({"false", "0", "no"})

UNNAMED_OBJECT = "Unnamed Object"

# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def is_empty(value: Any) -> bool:
    """``None``, a missing key (read as ``None``) and ``""`` are empty."""
    return value is None or value == ""


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list | tuple):
        return ", ".join(stringify(v) for v in value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime | date):
        return value.isoformat()
    return str(value)


def to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float | Decimal):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def to_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    return None


def to_instant(value: Any) -> datetime | None:
    """Read *value* as an aware datetime.  Dates become midnight UTC."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def normalize_number(number: float) -> int | float:
    return int(number) if number.is_integer() else number


def collation_key(text: str) -> tuple[str, str]:
    """Accent- and case-insensitive ordering key; the raw text breaks ties."""
    decomposed = unicodedata.normalize("NFKD", text)
    folded = "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()
    return (folded, text)


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------


def format_number(number: float) -> str:
    if number.is_integer():
        return f"{int(number):,}"
    return f"{number:,.2f}"


def format_value(value: Any, field: FieldDef | None) -> str:
    """Human-readable rendering of a stored value."""
    if value is None:
        return ""
    kind = field.type if field is not None else None
    match kind:
        case FieldType.NUMBER:
            number = to_number(value)
            return format_number(number) if number is not None else stringify(value)
        case FieldType.BOOLEAN:
            flag = to_bool(value)
            return stringify(value) if flag is None else ("Yes" if flag else "No")
        case FieldType.SELECT:
            option = field.option(value)
            return option.label if option else stringify(value)
        case FieldType.MULTISELECT if isinstance(value, list):
            labels = []
            for item in value:
                option = field.option(item)
                labels.append(option.label if option else stringify(item))
            return ", ".join(labels)
        case FieldType.DATE:
            instant = to_instant(value)
            return instant.date().isoformat() if instant else stringify(value)
        case _:
            if isinstance(value, int | float) and not isinstance(value, bool):
                return format_number(float(value))
            return stringify(value)


def display_name(modules: Mapping[str, Mapping[str, Any]]) -> str:
    """Derive an object's display name from its module data.

    Checks ``identity.name``, then ``organization.company_name``, then the
    first module (in the given order) carrying a ``name`` or ``title``.
    """
    identity = modules.get("identity") or {}
    if identity.get("name"):
        return str(identity["name"])
    organization = modules.get("organization") or {}
    if organization.get("company_name"):
        return str(organization["company_name"])
    for data in modules.values():
        for key in ("name", "title"):
            if data.get(key):
                return str(data[key])
    return UNNAMED_OBJECT


# ---------------------------------------------------------------------------
# Payload validation
# ---------------------------------------------------------------------------


def apply_defaults(module: Module, data: Mapping[str, Any]) -> dict[str, Any]:
    """Fill declared defaults for keys that are absent or ``None``."""
    result = dict(data)
    for field in module.fields:
        if result.get(field.key) is None and field.default is not None:
            result[field.key] = field.default
    return result


def _check_text(field: FieldDef, value: Any) -> str:
    if not isinstance(value, str):
        msg = "must be a string"
        raise ValueError(msg)  # noqa: TRY004
    return value


def _check_number(field: FieldDef, value: Any) -> int | float:
    number = to_number(value)
    if number is None:
        msg = "must be a number"
        raise ValueError(msg)
    if field.min is not None and number < field.min:
        msg = f"must be >= {format_number(field.min)}"
        raise ValueError(msg)
    if field.max is not None and number > field.max:
        msg = f"must be <= {format_number(field.max)}"
        raise ValueError(msg)
    return normalize_number(number)


def _check_boolean(field: FieldDef, value: Any) -> bool:
    flag = to_bool(value)
    if flag is None:
        msg = "must be a boolean"
        raise ValueError(msg)
    return flag


def _check_date(field: FieldDef, value: Any) -> str:
    instant = to_instant(value)
    if instant is None:
        msg = "must be an ISO date"
        raise ValueError(msg)
    return instant.date().isoformat()


def _check_datetime(field: FieldDef, value: Any) -> str:
    instant = to_instant(value)
    if instant is None:
        msg = "must be an ISO datetime"
        raise ValueError(msg)
    return instant.isoformat()


def _check_select(field: FieldDef, value: Any) -> str:
    if field.option(value) is None:
        allowed = ", ".join(o.value for o in field.options or ())
        msg = f"must be one of: {allowed}"
        raise ValueError(msg)
    return value


def _check_multiselect(field: FieldDef, value: Any) -> list[str]:
    if not isinstance(value, list):
        msg = "must be a list"
        raise ValueError(msg)  # noqa: TRY004
    for item in value:
        _check_select(field, item)
    return list(dict.fromkeys(value))


def _check_url(field: FieldDef, value: Any) -> str:
    parts = urlsplit(value) if isinstance(value, str) else None
    if parts is None or not parts.scheme or not parts.netloc:
        msg = "must be an absolute URL"
        raise ValueError(msg)
    return value


_CHECKS = {
    FieldType.TEXT: _check_text,
    FieldType.NUMBER: _check_number,
    FieldType.BOOLEAN: _check_boolean,
    FieldType.DATE: _check_date,
    FieldType.DATETIME: _check_datetime,
    FieldType.SELECT: _check_select,
    FieldType.MULTISELECT: _check_multiselect,
    FieldType.URL: _check_url,
}


def _field_validator(field: FieldDef, *, enforce_required: bool):
    check = _CHECKS[field.type]

    def validate(value: Any) -> Any:
        if value is None:
            if enforce_required and field.required:
                msg = "is required"
                raise ValueError(msg)
            return None
        return check(field, value)

    return validate


def _payload_model(module: Module, *, enforce_required: bool):
    definitions: dict[str, Any] = {}
    for index, field in enumerate(module.fields):
        annotation = Annotated[Any, AfterValidator(_field_validator(field, enforce_required=enforce_required))]
        if enforce_required and field.required:
            definitions[f"f{index}"] = (annotation, Field(alias=field.key))
        else:
            definitions[f"f{index}"] = (annotation, Field(default=None, alias=field.key))
    return create_model(
        f"{module.name.title().replace('_', '')}Payload",
        __config__=ConfigDict(extra="forbid"),
        **definitions,
    )


def validate_payload(module: Module, data: Mapping[str, Any], *, enforce_required: bool = True) -> dict[str, Any]:
    """Validate *data* against the module schema and return the normalized payload.

    Keys the module does not declare are rejected.  Absent optional keys stay
    absent.  Raises ``EngineValidationError`` listing every bad field.
    """
    model = _payload_model(module, enforce_required=enforce_required)
    try:
        parsed = model.model_validate(dict(data))
    except ValidationError as exc:
        problems = []
        for error in exc.errors():
            key = ".".join(str(part) for part in error["loc"])
            message = error["msg"].removeprefix("Value error, ")
            if error["type"] == "missing":
                message = "is required"
            elif error["type"] == "extra_forbidden":
                message = "is not a field of this module"
            problems.append(f"'{key}' {message}")
        msg = f"Invalid data for module '{module.name}': {'; '.join(problems)}"
        raise EngineValidationError(msg) from exc
    return parsed.model_dump(mode="json", by_alias=True, exclude_unset=True)


def raw_group_key(value: Any) -> str | None:
    """Raw string form of a value for distribution grouping.  ``None`` stays ``None``."""
    if value is None:
        return None
    if isinstance(value, list | dict):
        return json.dumps(value, sort_keys=True)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
