"""Schema domain models: modules, field definitions, object types, composition.

A :class:`Module` is a named group of typed fields.  An :class:`ObjectType`
is defined by an ordered composition of modules (:class:`ObjectTypeModule`).
Field definitions are the only source of type information for the dynamic
JSON payloads stored per object and module; nothing is inferred from data.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from composa.engine.models.enums import FieldType, SchemaRelationType

OPTION_TYPES = frozenset({FieldType.SELECT, FieldType.MULTISELECT})


class SelectOption(BaseModel):
    value: str
    label: str
    color: str | None = None


class FieldDef(BaseModel):
    """One typed field inside a module schema."""

    key: str = Field(min_length=1)
    label: str
    type: FieldType
    required: bool = False
    default: Any = None
    options: list[SelectOption] | None = None
    min: float | None = None
    max: float | None = None

    @model_validator(mode="after")
    def _check_type_specific(self) -> FieldDef:
        if self.options is not None and self.type not in OPTION_TYPES:
            msg = f"Field '{self.key}': options are only allowed on select/multiselect fields"
            raise ValueError(msg)
        if self.type in OPTION_TYPES:
            if not self.options:
                msg = f"Field '{self.key}': {self.type} fields need at least one option"
                raise ValueError(msg)
            values = [o.value for o in self.options]
            if len(values) != len(set(values)):
                msg = f"Field '{self.key}': option values must be unique"
                raise ValueError(msg)
        if (self.min is not None or self.max is not None) and self.type != FieldType.NUMBER:
            msg = f"Field '{self.key}': min/max are only allowed on number fields"
            raise ValueError(msg)
        if self.min is not None and self.max is not None and self.min > self.max:
            msg = f"Field '{self.key}': min must not exceed max"
            raise ValueError(msg)
        return self

    def option(self, value: Any) -> SelectOption | None:
        """Return the declared option matching *value*, if any."""
        for opt in self.options or ():
            if opt.value == value:
                return opt
        return None


def check_unique_keys(fields: list[FieldDef]) -> list[FieldDef]:
    keys = [f.key for f in fields]
    duplicates = sorted({k for k in keys if keys.count(k) > 1})
    if duplicates:
        msg = f"Duplicate field keys: {', '.join(duplicates)}"
        raise ValueError(msg)
    return fields


class Module(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    display_name: str
    description: str | None = None
    icon: str | None = None
    fields: list[FieldDef] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _unique_keys(self) -> Module:
        check_unique_keys(self.fields)
        return self

    def field(self, key: str) -> FieldDef | None:
        for f in self.fields:
            if f.key == key:
                return f
        return None


class ObjectType(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    display_name: str
    description: str | None = None
    icon: str = "Box"
    color: str = "#6366f1"
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class ObjectTypeModule(BaseModel):
    """Join entity between an object type and one of its modules."""

    model_config = ConfigDict(from_attributes=True)

    object_type_id: str
    module_id: str
    required: bool = True
    position: int = 0


class CompositionEntry(BaseModel):
    """A composition link with its module definition resolved."""

    module: Module
    required: bool
    position: int


class ObjectTypeDetail(ObjectType):
    """Object type with its ordered, schema-resolved composition."""

    modules: list[CompositionEntry] = Field(default_factory=list)


class ObjectTypeRelation(BaseModel):
    """Schema-level relation definition between two object types.

    ``source_field_name`` labels the relation on the source type (e.g.
    "Employees" on a company), ``target_field_name`` on the target type.
    """

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    source_type_id: str
    target_type_id: str
    relation_type: SchemaRelationType
    source_field_name: str
    target_field_name: str
    is_active: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")
    created_at: datetime
    updated_at: datetime


class ObjectTypeRelationDetail(ObjectTypeRelation):
    """Relation definition with the names of both object types resolved."""

    source_type_name: str | None = None
    source_type_display_name: str | None = None
    target_type_name: str | None = None
    target_type_display_name: str | None = None
