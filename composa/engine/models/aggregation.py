"""Aggregation result shapes."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from composa.engine.models.enums import AggregationType


class AggregateResult(BaseModel):
    module: str
    field: str
    agg_type: AggregationType
    object_type_id: str | None = None
    value: int | float
    display: str


class CountByEntry(BaseModel):
    """One group of a value distribution.  ``value`` is ``None`` for null/missing."""

    value: str | None
    label: str
    count: int


class TypeCount(BaseModel):
    object_type_id: str
    name: str
    display_name: str
    icon: str = "Box"
    color: str = "#6366f1"
    count: int


class RecentObject(BaseModel):
    id: str
    object_type_id: str
    object_type: str
    display_name: str
    created_at: datetime


class DashboardStats(BaseModel):
    """Dashboard overview: per-type counts, their total and the newest objects."""

    object_counts: list[TypeCount] = Field(default_factory=list)
    total_objects: int = 0
    recent_objects: list[RecentObject] = Field(default_factory=list)
