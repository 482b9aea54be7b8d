"""Object domain models: headers, per-module data blobs, relations."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ObjectHeader(BaseModel):
    """Identity and ownership of one object.  Carries no business fields."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    object_type_id: str
    owner_id: str | None = None
    created_by: str
    created_at: datetime
    updated_at: datetime

    def owned_by(self, principal_id: str) -> bool:
        return principal_id in (self.owner_id, self.created_by)


class ModuleRecord(BaseModel):
    """The JSON payload of one module for one object."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    object_id: str
    module_id: str
    data: dict[str, Any] = Field(default_factory=dict)


class ObjectRelation(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    from_object_id: str
    to_object_id: str
    relation_type: str
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")
    created_at: datetime


class ObjectWithModules(ObjectHeader):
    """An object header joined with the module data the caller may read.

    ``modules`` is keyed by module name and follows composition order.
    """

    display_name: str = ""
    modules: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def value(self, module_name: str, field_key: str) -> Any:
        data = self.modules.get(module_name)
        if data is None:
            return None
        return data.get(field_key)
