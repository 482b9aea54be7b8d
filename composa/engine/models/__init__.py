"""Data models for the composa engine."""

from composa.engine.models.aggregation import AggregateResult, CountByEntry, DashboardStats, RecentObject, TypeCount
from composa.engine.models.api import (
    AggregateRequest,
    CompositionCreate,
    CompositionUpdate,
    CountByRequest,
    EvaluateRequest,
    ModuleCreate,
    ModuleDataWrite,
    ModuleUpdate,
    ObjectCreate,
    ObjectTypeCreate,
    ObjectTypeUpdate,
    RelationCreate,
    TypeRelationCreate,
    TypeRelationToggle,
    ViewCreate,
    ViewUpdate,
)
from composa.engine.models.enums import (
    Access,
    Action,
    AggregationType,
    FieldType,
    FilterOperator,
    LayoutType,
    RelationDirection,
    SchemaRelationType,
    SortDirection,
    Visibility,
)
from composa.engine.models.objects import ModuleRecord, ObjectHeader, ObjectRelation, ObjectWithModules
from composa.engine.models.permissions import AccessContext, Capabilities, ModuleGrant
from composa.engine.models.schema import (
    CompositionEntry,
    FieldDef,
    Module,
    ObjectType,
    ObjectTypeDetail,
    ObjectTypeModule,
    ObjectTypeRelation,
    ObjectTypeRelationDetail,
    SelectOption,
)
from composa.engine.models.views import (
    BoundFilter,
    FieldRef,
    Filter,
    KanbanBoard,
    KanbanBucket,
    Sort,
    View,
    ViewResult,
)

__all__ = [
    "Access",
    "AccessContext",
    "Action",
    "AggregateRequest",
    "AggregateResult",
    "AggregationType",
    "BoundFilter",
    "Capabilities",
    "CompositionCreate",
    "CompositionEntry",
    "CompositionUpdate",
    "CountByEntry",
    "CountByRequest",
    "DashboardStats",
    "EvaluateRequest",
    "FieldDef",
    "FieldRef",
    "FieldType",
    "Filter",
    "FilterOperator",
    "KanbanBoard",
    "KanbanBucket",
    "LayoutType",
    "Module",
    "ModuleCreate",
    "ModuleDataWrite",
    "ModuleGrant",
    "ModuleRecord",
    "ModuleUpdate",
    "ObjectCreate",
    "ObjectHeader",
    "ObjectRelation",
    "ObjectType",
    "ObjectTypeCreate",
    "ObjectTypeDetail",
    "ObjectTypeModule",
    "ObjectTypeRelation",
    "ObjectTypeRelationDetail",
    "ObjectTypeUpdate",
    "ObjectWithModules",
    "RecentObject",
    "RelationCreate",
    "RelationDirection",
    "SchemaRelationType",
    "SelectOption",
    "Sort",
    "SortDirection",
    "TypeCount",
    "TypeRelationCreate",
    "TypeRelationToggle",
    "View",
    "ViewCreate",
    "ViewResult",
    "ViewUpdate",
    "Visibility",
]
