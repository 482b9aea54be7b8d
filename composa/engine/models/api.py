"""Request schemas for engine mutations.

- **Create** schemas validate caller input and provide defaults.
- **Update** schemas allow partial updates via ``exclude_unset``.

Responses reuse the domain models directly; they already serialize cleanly.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from composa.engine.models.enums import AggregationType, LayoutType, SchemaRelationType, Visibility
from composa.engine.models.schema import FieldDef, check_unique_keys
from composa.engine.models.views import FieldRef, Filter, Sort

_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"

# ---------------------------------------------------------------------------
# Modules
# ---------------------------------------------------------------------------


class ModuleCreate(BaseModel):
    name: str = Field(pattern=_NAME_PATTERN)
    display_name: str
    description: str | None = None
    icon: str | None = None
    fields: list[FieldDef] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("fields")
    @classmethod
    def _unique_keys(cls, v: list[FieldDef]) -> list[FieldDef]:
        return check_unique_keys(v)


class ModuleUpdate(BaseModel):
    """Partial update -- only fields explicitly set by the caller are applied."""

    name: str | None = Field(default=None, pattern=_NAME_PATTERN)
    display_name: str | None = None
    description: str | None = None
    icon: str | None = None
    fields: list[FieldDef] | None = None
    is_active: bool | None = None

    @field_validator("fields")
    @classmethod
    def _unique_keys(cls, v: list[FieldDef] | None) -> list[FieldDef] | None:
        return check_unique_keys(v) if v is not None else v


# ---------------------------------------------------------------------------
# Object types and composition
# ---------------------------------------------------------------------------


class CompositionCreate(BaseModel):
    module_id: str
    required: bool = True
    position: int | None = Field(default=None, description="Appended after the last entry if omitted.")


class CompositionUpdate(BaseModel):
    required: bool | None = None
    position: int | None = None


class ObjectTypeCreate(BaseModel):
    name: str = Field(pattern=_NAME_PATTERN)
    display_name: str
    description: str | None = None
    icon: str = "Box"
    color: str = "#6366f1"
    is_active: bool = True
    modules: list[CompositionCreate] = Field(default_factory=list)


class ObjectTypeUpdate(BaseModel):
    name: str | None = Field(default=None, pattern=_NAME_PATTERN)
    display_name: str | None = None
    description: str | None = None
    icon: str | None = None
    color: str | None = None
    is_active: bool | None = None


class TypeRelationCreate(BaseModel):
    source_type_id: str
    target_type_id: str
    relation_type: SchemaRelationType
    source_field_name: str = Field(min_length=1)
    target_field_name: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TypeRelationToggle(BaseModel):
    is_active: bool


# ---------------------------------------------------------------------------
# Objects and relations
# ---------------------------------------------------------------------------


class ObjectCreate(BaseModel):
    object_type_id: str
    owner_id: str | None = Field(default=None, description="Defaults to the creating principal.")
    modules: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Initial data keyed by module name.  Every required module must be present.",
    )


class ModuleDataWrite(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)


class RelationCreate(BaseModel):
    from_object_id: str
    to_object_id: str
    relation_type: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


class ViewCreate(BaseModel):
    object_type_id: str
    name: str = Field(min_length=1)
    icon: str = "List"
    layout_type: LayoutType = LayoutType.TABLE
    filters: list[Filter] = Field(default_factory=list)
    sorts: list[Sort] = Field(default_factory=list)
    visible_fields: list[FieldRef] = Field(default_factory=list)
    kanban_module_name: str | None = None
    kanban_field_key: str | None = None
    visibility: Visibility = Visibility.WORKSPACE


class ViewUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    icon: str | None = None
    layout_type: LayoutType | None = None
    filters: list[Filter] | None = None
    sorts: list[Sort] | None = None
    visible_fields: list[FieldRef] | None = None
    kanban_module_name: str | None = None
    kanban_field_key: str | None = None
    visibility: Visibility | None = None


class EvaluateRequest(BaseModel):
    page: int = 1
    page_size: int | None = None
    search: str | None = None


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class AggregateRequest(BaseModel):
    module: str
    field: str
    agg_type: AggregationType
    object_type_id: str | None = None


class CountByRequest(BaseModel):
    module: str
    field: str
    object_type_id: str | None = None
