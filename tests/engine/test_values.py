"""Unit tests for value coercion, display and payload validation."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from composa.engine.errors import EngineValidationError
from composa.engine.models import FieldDef, FieldType, Module, SelectOption
from composa.engine.values import (
    UNNAMED_OBJECT,
    apply_defaults,
    collation_key,
    display_name,
    format_value,
    raw_group_key,
    stringify,
    to_bool,
    to_instant,
    to_number,
    validate_payload,
)


def _module(*fields: FieldDef) -> Module:
    now = datetime.now(UTC)
    return Module(id="m1", name="sample", display_name="Sample", fields=list(fields), created_at=now, updated_at=now)


PRIORITY = FieldDef(
    key="priority",
    label="Priority",
    type=FieldType.SELECT,
    options=[SelectOption(value="p1", label="Urgent"), SelectOption(value="p2", label="Normal")],
)


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("value", "expected"),
    [(5, 5.0), ("12.5", 12.5), (" 3 ", 3.0), (True, None), ("abc", None), ("", None), (float("nan"), None)],
)
def test_to_number(value, expected) -> None:
    assert to_number(value) == expected


def test_to_bool() -> None:
    assert to_bool("Yes") is True
    assert to_bool(0) is False
    assert to_bool("maybe") is None
    assert to_bool(2) is None


def test_to_instant_date_is_midnight_utc() -> None:
    assert to_instant("2024-03-01") == datetime(2024, 3, 1, tzinfo=UTC)
    assert to_instant(date(2024, 3, 1)) == datetime(2024, 3, 1, tzinfo=UTC)
    assert to_instant("not a date") is None


def test_stringify() -> None:
    assert stringify(None) == ""
    assert stringify(True) == "true"
    assert stringify(3.0) == "3"
    assert stringify(["a", "b"]) == "a, b"


def test_collation_key_ignores_case_and_accents() -> None:
    assert collation_key("Émile")[0] == collation_key("emile")[0]
    assert sorted(["zeta", "Éclair", "apple"], key=collation_key) == ["apple", "Éclair", "zeta"]


def test_raw_group_key() -> None:
    assert raw_group_key(None) is None
    assert raw_group_key("") == ""
    assert raw_group_key(False) == "false"
    assert raw_group_key(["b", "a"]) == '["b", "a"]'


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------


def test_format_value() -> None:
    assert format_value(1500000, FieldDef(key="n", label="N", type=FieldType.NUMBER)) == "1,500,000"
    assert format_value(2.5, FieldDef(key="n", label="N", type=FieldType.NUMBER)) == "2.50"
    assert format_value(True, FieldDef(key="b", label="B", type=FieldType.BOOLEAN)) == "Yes"
    assert format_value("p1", PRIORITY) == "Urgent"
    assert format_value("unknown", PRIORITY) == "unknown"
    assert format_value(None, PRIORITY) == ""


def test_display_name_precedence() -> None:
    assert display_name({"organization": {"company_name": "Acme"}, "identity": {"name": "Ada"}}) == "Ada"
    assert display_name({"organization": {"company_name": "Acme"}}) == "Acme"
    assert display_name({"task": {"title": "Ship it"}, "doc": {"name": "Later"}}) == "Ship it"
    assert display_name({"identity": {"name": ""}, "misc": {}}) == UNNAMED_OBJECT


# ---------------------------------------------------------------------------
# Payload validation
# ---------------------------------------------------------------------------


def test_validate_payload_normalizes() -> None:
    module = _module(
        FieldDef(key="count", label="Count", type=FieldType.NUMBER),
        FieldDef(key="active", label="Active", type=FieldType.BOOLEAN),
        FieldDef(key="due", label="Due", type=FieldType.DATE),
        FieldDef(
            key="labels",
            label="Labels",
            type=FieldType.MULTISELECT,
            options=[SelectOption(value="a", label="A"), SelectOption(value="b", label="B")],
        ),
    )
    payload = validate_payload(module, {"count": "42", "active": "yes", "due": "2024-05-06T10:00:00", "labels": ["a", "a"]})
    assert payload == {"count": 42, "active": True, "due": "2024-05-06", "labels": ["a"]}


def test_validate_payload_keeps_absent_optionals_absent() -> None:
    module = _module(FieldDef(key="title", label="Title", type=FieldType.TEXT), PRIORITY)
    assert validate_payload(module, {"title": "Hello"}) == {"title": "Hello"}


def test_validate_payload_rejects_undeclared_keys() -> None:
    module = _module(FieldDef(key="title", label="Title", type=FieldType.TEXT))
    with pytest.raises(EngineValidationError, match="'legacy' is not a field of this module"):
        validate_payload(module, {"title": "Hello", "legacy": 7})


def test_validate_payload_required() -> None:
    module = _module(FieldDef(key="title", label="Title", type=FieldType.TEXT, required=True))
    with pytest.raises(EngineValidationError, match="'title' is required"):
        validate_payload(module, {})
    with pytest.raises(EngineValidationError, match="'title' is required"):
        validate_payload(module, {"title": None})
    assert validate_payload(module, {}, enforce_required=False) == {}


def test_validate_payload_reports_every_bad_field() -> None:
    module = _module(
        FieldDef(key="amount", label="Amount", type=FieldType.NUMBER, min=0, max=100),
        FieldDef(key="site", label="Site", type=FieldType.URL),
        PRIORITY,
    )
    with pytest.raises(EngineValidationError) as exc_info:
        validate_payload(module, {"amount": 250, "site": "example.com", "priority": "p9"})
    message = exc_info.value.message
    assert "'amount' must be <= 100" in message
    assert "'site' must be an absolute URL" in message
    assert "'priority' must be one of: p1, p2" in message


def test_apply_defaults() -> None:
    module = _module(
        FieldDef(key="status", label="Status", type=FieldType.TEXT, default="new"),
        FieldDef(key="note", label="Note", type=FieldType.TEXT),
    )
    assert apply_defaults(module, {"status": None}) == {"status": "new"}
    assert apply_defaults(module, {"status": "done"}) == {"status": "done"}
