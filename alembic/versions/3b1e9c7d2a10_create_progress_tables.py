"""create progress and catalog tables

Revision ID: 3b1e9c7d2a10
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1e9c7d2a10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "sub_materials",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("module_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("order_index", sa.Integer(), nullable=False),
        sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index(
        "ix_sub_materials_module_order", "sub_materials", ["module_id", "order_index"]
    )

    op.create_table(
        "catalog_points",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column(
            "sub_material_id",
            sa.String(length=128),
            sa.ForeignKey("sub_materials.id"),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_catalog_points_sub_material_id", "catalog_points", ["sub_material_id"]
    )

    op.create_table(
        "user_point_progress",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("module_id", sa.Integer(), nullable=False),
        sa.Column("sub_material_id", sa.String(length=128), nullable=False),
        sa.Column("point_id", sa.String(length=128), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "point_id", name="uq_user_point_progress"),
    )
    op.create_index(
        "ix_user_point_progress_module", "user_point_progress", ["user_id", "module_id"]
    )

    op.create_table(
        "user_sub_material_rollup",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("module_id", sa.Integer(), nullable=False),
        sa.Column("sub_material_id", sa.String(length=128), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("progress_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "sub_material_id", name="uq_user_sub_material_rollup"
        ),
    )
    op.create_index(
        "ix_user_sub_material_rollup_module",
        "user_sub_material_rollup",
        ["user_id", "module_id"],
    )

    op.create_table(
        "user_module_progress",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("module_id", sa.Integer(), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("progress_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "module_id", name="uq_user_module_progress"),
    )

    op.create_table(
        "user_sub_material_progress",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("sub_material_id", sa.String(length=128), nullable=False),
        sa.Column("is_unlocked", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("current_point_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("progress_percent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "sub_material_id", name="uq_user_sub_material_progress"
        ),
    )


def downgrade() -> None:
    op.drop_table("user_sub_material_progress")
    op.drop_table("user_module_progress")
    op.drop_index("ix_user_sub_material_rollup_module", table_name="user_sub_material_rollup")
    op.drop_table("user_sub_material_rollup")
    op.drop_index("ix_user_point_progress_module", table_name="user_point_progress")
    op.drop_table("user_point_progress")
    op.drop_index("ix_catalog_points_sub_material_id", table_name="catalog_points")
    op.drop_table("catalog_points")
    op.drop_index("ix_sub_materials_module_order", table_name="sub_materials")
    op.drop_table("sub_materials")
