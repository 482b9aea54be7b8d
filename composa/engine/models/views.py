"""Saved views and evaluation results.

A :class:`View` is a declarative query (filters, sort, visible fields, layout)
over one object type.  :class:`ViewResult` is what evaluating it produces.
All of these serialize to JSON without loss.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from composa.engine.models.enums import FilterOperator, LayoutType, SortDirection, Visibility
from composa.engine.models.objects import ObjectWithModules

if TYPE_CHECKING:
    from composa.engine.models.schema import FieldDef, Module


class Filter(BaseModel):
    module: str
    field: str
    operator: FilterOperator
    value: Any = None


class Sort(BaseModel):
    module: str
    field: str
    direction: SortDirection = SortDirection.ASC


class FieldRef(BaseModel):
    module: str
    field: str
    width: int | None = None
    position: int = 0


class View(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    object_type_id: str
    name: str
    icon: str = "List"
    layout_type: LayoutType = LayoutType.TABLE
    filters: list[Filter] = Field(default_factory=list)
    sorts: list[Sort] = Field(default_factory=list)
    visible_fields: list[FieldRef] = Field(default_factory=list)
    kanban_module_name: str | None = None
    kanban_field_key: str | None = None
    is_default: bool = False
    visibility: Visibility = Visibility.WORKSPACE
    created_by: str
    created_at: datetime
    updated_at: datetime

    def visible_to(self, principal_id: str) -> bool:
        return self.visibility == Visibility.WORKSPACE or self.created_by == principal_id


@dataclass(frozen=True)
class BoundFilter:
    """A filter resolved against the composition it runs on."""

    filter: Filter
    module: Module
    field: FieldDef

    @property
    def operator(self) -> FilterOperator:
        return self.filter.operator

    @property
    def value(self) -> Any:
        return self.filter.value


# -- Results -----------------------------------------------------------------


class KanbanBucket(BaseModel):
    """One board column.  ``value`` is ``None`` for the uncategorized bucket."""

    value: str | None
    label: str
    color: str | None = None
    object_ids: list[str] = Field(default_factory=list)


class KanbanBoard(BaseModel):
    module: str
    field: str
    buckets: list[KanbanBucket]


class ViewResult(BaseModel):
    objects: list[ObjectWithModules]
    total: int
    page: int
    page_size: int
    board: KanbanBoard | None = None

    @property
    def page_count(self) -> int:
        return -(-self.total // self.page_size) if self.total else 0
