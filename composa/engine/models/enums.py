"""Shared enumerations used across the engine."""

from __future__ import annotations

from enum import StrEnum

# -- Schema ------------------------------------------------------------------


class FieldType(StrEnum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    SELECT = "select"
    MULTISELECT = "multiselect"
    URL = "url"


class SchemaRelationType(StrEnum):
    """Cardinality of a relation defined between two object types."""

    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"


# -- Permissions -------------------------------------------------------------


class Action(StrEnum):
    """Flat action permissions granted to roles."""

    OBJECT_CREATE = "object:create"
    OBJECT_READ = "object:read"
    OBJECT_READ_OWN = "object:read:own"
    OBJECT_UPDATE = "object:update"
    OBJECT_UPDATE_OWN = "object:update:own"
    OBJECT_DELETE = "object:delete"
    OBJECT_DELETE_OWN = "object:delete:own"
    MODULE_MANAGE = "module:manage"
    OBJECT_TYPE_MANAGE = "object_type:manage"
    RELATION_CREATE = "relation:create"
    RELATION_DELETE = "relation:delete"
    VIEW_MANAGE = "view:manage"
    DASHBOARD_VIEW = "dashboard:view"


class Access(StrEnum):
    """Capability requested against a module scope."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"


# -- Views -------------------------------------------------------------------


class FilterOperator(StrEnum):
    EQ = "eq"
    NEQ = "neq"
    CONTAINS = "contains"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    IN = "in"


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


class LayoutType(StrEnum):
    TABLE = "table"
    KANBAN = "kanban"


class Visibility(StrEnum):
    WORKSPACE = "workspace"
    UNLISTED = "unlisted"


# -- Objects -----------------------------------------------------------------


class RelationDirection(StrEnum):
    """``from``: edges leaving the object; ``to``: edges pointing at it."""

    FROM = "from"
    TO = "to"
    BOTH = "both"


# -- Aggregation -------------------------------------------------------------


class AggregationType(StrEnum):
    SUM = "sum"
    AVG = "avg"
    COUNT = "count"
    MIN = "min"
    MAX = "max"
