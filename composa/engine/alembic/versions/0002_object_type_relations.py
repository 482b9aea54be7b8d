"""object type relation definitions

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18 15:00:00
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0002"
down_revision: str | None = "0001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_TZ = sa.DateTime(timezone=True)


def upgrade() -> None:
    op.create_table(
        "object_type_relations",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("source_type_id", sa.String(), nullable=False),
        sa.Column("target_type_id", sa.String(), nullable=False),
        sa.Column("relation_type", sa.String(), nullable=False),
        sa.Column("source_field_name", sa.String(), nullable=False),
        sa.Column("target_field_name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("metadata", postgresql.JSONB(), server_default="{}", nullable=False),
        sa.Column("created_at", _TZ, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", _TZ, server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ["source_type_id"],
            ["object_types.id"],
            name="fk_object_type_relations_source_type_id_object_types",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["target_type_id"],
            ["object_types.id"],
            name="fk_object_type_relations_target_type_id_object_types",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_object_type_relations"),
        sa.UniqueConstraint(
            "source_type_id", "source_field_name", name="uq_object_type_relations_source_field"
        ),
    )
    op.create_index("ix_object_type_relations_target_type_id", "object_type_relations", ["target_type_id"])


def downgrade() -> None:
    op.drop_index("ix_object_type_relations_target_type_id", table_name="object_type_relations")
    op.drop_table("object_type_relations")
