"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_TZ = sa.DateTime(timezone=True)


def upgrade() -> None:
    op.create_table(
        "modules",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(), nullable=True),
        sa.Column("schema", postgresql.JSONB(), server_default="[]", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("created_at", _TZ, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", _TZ, server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_modules"),
        sa.UniqueConstraint("name", name="uq_modules_name"),
    )
    op.create_table(
        "object_types",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(), server_default="Box", nullable=False),
        sa.Column("color", sa.String(), server_default="#6366f1", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("created_at", _TZ, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", _TZ, server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_object_types"),
        sa.UniqueConstraint("name", name="uq_object_types_name"),
    )
    op.create_table(
        "object_type_modules",
        sa.Column("object_type_id", sa.String(), nullable=False),
        sa.Column("module_id", sa.String(), nullable=False),
        sa.Column("required", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("position", sa.Integer(), server_default="0", nullable=False),
        sa.ForeignKeyConstraint(
            ["object_type_id"],
            ["object_types.id"],
            name="fk_object_type_modules_object_type_id_object_types",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["module_id"], ["modules.id"], name="fk_object_type_modules_module_id_modules", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("object_type_id", "module_id", name="pk_object_type_modules"),
    )

    # -- Objects ---------------------------------------------------------------
    op.create_table(
        "objects",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("object_type_id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", _TZ, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", _TZ, server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ["object_type_id"], ["object_types.id"], name="fk_objects_object_type_id_object_types", ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_objects"),
    )
    op.create_index("ix_objects_object_type_id_created_at", "objects", ["object_type_id", "created_at"])
    op.create_index("ix_objects_owner_id", "objects", ["owner_id"])

    op.create_table(
        "object_modules",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("object_id", sa.String(), nullable=False),
        sa.Column("module_id", sa.String(), nullable=False),
        sa.Column("data", postgresql.JSONB(), server_default="{}", nullable=False),
        sa.ForeignKeyConstraint(
            ["object_id"], ["objects.id"], name="fk_object_modules_object_id_objects", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["module_id"], ["modules.id"], name="fk_object_modules_module_id_modules", ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_object_modules"),
        sa.UniqueConstraint("object_id", "module_id", name="uq_object_modules_object_id_module_id"),
    )
    op.create_index("ix_object_modules_module_id", "object_modules", ["module_id"])

    op.create_table(
        "object_relations",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("from_object_id", sa.String(), nullable=False),
        sa.Column("to_object_id", sa.String(), nullable=False),
        sa.Column("relation_type", sa.String(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), server_default="{}", nullable=False),
        sa.Column("created_at", _TZ, server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ["from_object_id"], ["objects.id"], name="fk_object_relations_from_object_id_objects", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["to_object_id"], ["objects.id"], name="fk_object_relations_to_object_id_objects", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_object_relations"),
    )
    op.create_index("ix_object_relations_from_object_id", "object_relations", ["from_object_id"])
    op.create_index("ix_object_relations_to_object_id", "object_relations", ["to_object_id"])

    # -- Permissions -----------------------------------------------------------
    op.create_table(
        "roles",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_roles"),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("role_id", sa.String(), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], name="fk_user_roles_role_id_roles", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id", "role_id", name="pk_user_roles"),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.ForeignKeyConstraint(
            ["role_id"], ["roles.id"], name="fk_role_permissions_role_id_roles", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("role_id", "action", name="pk_role_permissions"),
    )
    op.create_table(
        "role_module_permissions",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("role_id", sa.String(), nullable=False),
        sa.Column("module_id", sa.String(), nullable=True),
        sa.Column("object_type_id", sa.String(), nullable=True),
        sa.Column("can_read", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("can_write", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("can_delete", sa.Boolean(), server_default="false", nullable=False),
        sa.ForeignKeyConstraint(
            ["role_id"], ["roles.id"], name="fk_role_module_permissions_role_id_roles", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["module_id"], ["modules.id"], name="fk_role_module_permissions_module_id_modules", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["object_type_id"],
            ["object_types.id"],
            name="fk_role_module_permissions_object_type_id_object_types",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_role_module_permissions"),
        sa.UniqueConstraint(
            "role_id",
            "module_id",
            "object_type_id",
            name="uq_role_module_permissions_scope",
            postgresql_nulls_not_distinct=True,
        ),
    )

    # -- Views -----------------------------------------------------------------
    op.create_table(
        "views",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("object_type_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("icon", sa.String(), server_default="List", nullable=False),
        sa.Column("layout_type", sa.String(), server_default="table", nullable=False),
        sa.Column("filters", postgresql.JSONB(), server_default="[]", nullable=False),
        sa.Column("sorts", postgresql.JSONB(), server_default="[]", nullable=False),
        sa.Column("visible_fields", postgresql.JSONB(), server_default="[]", nullable=False),
        sa.Column("kanban_module_name", sa.String(), nullable=True),
        sa.Column("kanban_field_key", sa.String(), nullable=True),
        sa.Column("is_default", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("visibility", sa.String(), server_default="workspace", nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", _TZ, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", _TZ, server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ["object_type_id"], ["object_types.id"], name="fk_views_object_type_id_object_types", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_views"),
    )
    op.create_index("ix_views_object_type_id", "views", ["object_type_id"])
    op.create_index(
        "uq_views_default_per_type",
        "views",
        ["object_type_id"],
        unique=True,
        postgresql_where=sa.text("is_default"),
    )


def downgrade() -> None:
    op.drop_index("uq_views_default_per_type", table_name="views")
    op.drop_index("ix_views_object_type_id", table_name="views")
    op.drop_table("views")
    op.drop_table("role_module_permissions")
    op.drop_table("role_permissions")
    op.drop_table("user_roles")
    op.drop_table("roles")
    op.drop_index("ix_object_relations_to_object_id", table_name="object_relations")
    op.drop_index("ix_object_relations_from_object_id", table_name="object_relations")
    op.drop_table("object_relations")
    op.drop_index("ix_object_modules_module_id", table_name="object_modules")
    op.drop_table("object_modules")
    op.drop_index("ix_objects_owner_id", table_name="objects")
    op.drop_index("ix_objects_object_type_id_created_at", table_name="objects")
    op.drop_table("objects")
    op.drop_table("object_type_modules")
    op.drop_table("object_types")
    op.drop_table("modules")
