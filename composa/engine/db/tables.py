"""SQLAlchemy ORM tables for the PostgreSQL store.

``Base.metadata`` is what Alembic diffs against.  Module payloads and view
specs live in JSONB columns; everything relational (composition, grants,
relations) is normalized.

Object deletion cascades to module data and relations at the database
level.  Modules with data and object types with objects are protected by
``RESTRICT`` foreign keys as a backstop for the registry's own checks.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Text, UniqueConstraint, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

TimestampTZ = DateTime(timezone=True)


class Base(DeclarativeBase):
    pass


Base.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class Module(Base):
    __tablename__ = "modules"

    id: Mapped[str] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(unique=True)
    display_name: Mapped[str]
    description: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None]
    fields: Mapped[list] = mapped_column("schema", JSONB, nullable=False, server_default="[]")
    is_active: Mapped[bool] = mapped_column(default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now(), onupdate=func.now())


class ObjectType(Base):
    __tablename__ = "object_types"

    id: Mapped[str] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(unique=True)
    display_name: Mapped[str]
    description: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str] = mapped_column(server_default="Box")
    color: Mapped[str] = mapped_column(server_default="#6366f1")
    is_active: Mapped[bool] = mapped_column(default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now(), onupdate=func.now())


class ObjectTypeModule(Base):
    __tablename__ = "object_type_modules"

    object_type_id: Mapped[str] = mapped_column(ForeignKey("object_types.id", ondelete="CASCADE"), primary_key=True)
    module_id: Mapped[str] = mapped_column(ForeignKey("modules.id", ondelete="CASCADE"), primary_key=True)
    required: Mapped[bool] = mapped_column(default=True, server_default="true")
    position: Mapped[int] = mapped_column(default=0, server_default="0")


class ObjectTypeRelation(Base):
    __tablename__ = "object_type_relations"
    __table_args__ = (
        UniqueConstraint("source_type_id", "source_field_name", name="uq_object_type_relations_source_field"),
        Index("ix_object_type_relations_target_type_id", "target_type_id"),
    )

    id: Mapped[str] = mapped_column(primary_key=True)
    source_type_id: Mapped[str] = mapped_column(ForeignKey("object_types.id", ondelete="CASCADE"))
    target_type_id: Mapped[str] = mapped_column(ForeignKey("object_types.id", ondelete="CASCADE"))
    relation_type: Mapped[str]
    source_field_name: Mapped[str]
    target_field_name: Mapped[str]
    is_active: Mapped[bool] = mapped_column(default=True, server_default="true")
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, server_default="{}")
    created_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())


# ---------------------------------------------------------------------------
# Objects
# ---------------------------------------------------------------------------


class Object(Base):
    __tablename__ = "objects"
    __table_args__ = (
        Index("ix_objects_object_type_id_created_at", "object_type_id", "created_at"),
        Index("ix_objects_owner_id", "owner_id"),
    )

    id: Mapped[str] = mapped_column(primary_key=True)
    object_type_id: Mapped[str] = mapped_column(ForeignKey("object_types.id", ondelete="RESTRICT"))
    owner_id: Mapped[str | None]
    created_by: Mapped[str]
    created_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())


class ObjectModule(Base):
    __tablename__ = "object_modules"
    __table_args__ = (
        UniqueConstraint("object_id", "module_id", name="uq_object_modules_object_id_module_id"),
        Index("ix_object_modules_module_id", "module_id"),
    )

    id: Mapped[str] = mapped_column(primary_key=True)
    object_id: Mapped[str] = mapped_column(ForeignKey("objects.id", ondelete="CASCADE"))
    module_id: Mapped[str] = mapped_column(ForeignKey("modules.id", ondelete="RESTRICT"))
    data: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default="{}")


class ObjectRelation(Base):
    __tablename__ = "object_relations"
    __table_args__ = (
        Index("ix_object_relations_from_object_id", "from_object_id"),
        Index("ix_object_relations_to_object_id", "to_object_id"),
    )

    id: Mapped[str] = mapped_column(primary_key=True)
    from_object_id: Mapped[str] = mapped_column(ForeignKey("objects.id", ondelete="CASCADE"))
    to_object_id: Mapped[str] = mapped_column(ForeignKey("objects.id", ondelete="CASCADE"))
    relation_type: Mapped[str]
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, server_default="{}")
    created_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(unique=True)
    description: Mapped[str | None] = mapped_column(Text)


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id: Mapped[str] = mapped_column(primary_key=True)
    role_id: Mapped[str] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)


class RolePermission(Base):
    __tablename__ = "role_permissions"

    role_id: Mapped[str] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
    action: Mapped[str] = mapped_column(primary_key=True)


class RoleModulePermission(Base):
    """Scoped grant.  NULL ``module_id`` / ``object_type_id`` are wildcards."""

    __tablename__ = "role_module_permissions"
    __table_args__ = (
        UniqueConstraint(
            "role_id",
            "module_id",
            "object_type_id",
            name="uq_role_module_permissions_scope",
            postgresql_nulls_not_distinct=True,
        ),
    )

    id: Mapped[str] = mapped_column(primary_key=True)
    role_id: Mapped[str] = mapped_column(ForeignKey("roles.id", ondelete="CASCADE"))
    module_id: Mapped[str | None] = mapped_column(ForeignKey("modules.id", ondelete="CASCADE"))
    object_type_id: Mapped[str | None] = mapped_column(ForeignKey("object_types.id", ondelete="CASCADE"))
    can_read: Mapped[bool] = mapped_column(default=False, server_default="false")
    can_write: Mapped[bool] = mapped_column(default=False, server_default="false")
    can_delete: Mapped[bool] = mapped_column(default=False, server_default="false")


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


class View(Base):
    __tablename__ = "views"
    __table_args__ = (
        Index("ix_views_object_type_id", "object_type_id"),
        Index(
            "uq_views_default_per_type",
            "object_type_id",
            unique=True,
            postgresql_where=text("is_default"),
        ),
    )

    id: Mapped[str] = mapped_column(primary_key=True)
    object_type_id: Mapped[str] = mapped_column(ForeignKey("object_types.id", ondelete="CASCADE"))
    name: Mapped[str]
    icon: Mapped[str] = mapped_column(server_default="List")
    layout_type: Mapped[str] = mapped_column(server_default="table")
    filters: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
    sorts: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
    visible_fields: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
    kanban_module_name: Mapped[str | None]
    kanban_field_key: Mapped[str | None]
    is_default: Mapped[bool] = mapped_column(default=False, server_default="false")
    visibility: Mapped[str] = mapped_column(server_default="workspace")
    created_by: Mapped[str]
    created_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now())
