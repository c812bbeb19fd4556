"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in app/models/.
Repos convert between SQLAlchemy rows and domain dataclasses.

The unique constraints are load-bearing: every progress write is an
``INSERT .. ON CONFLICT`` against one of them.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.engine import Base

# --- Catalog (owned by the content client; read-only here) ---


class SubMaterialRow(Base):
    __tablename__ = "sub_materials"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    module_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("ix_sub_materials_module_order", "module_id", "order_index"),)


class CatalogPointRow(Base):
    __tablename__ = "catalog_points"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    sub_material_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("sub_materials.id"), nullable=False, index=True
    )


# --- Progress rollups ---


class PointProgressRow(Base):
    __tablename__ = "user_point_progress"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    module_id: Mapped[int] = mapped_column(Integer, nullable=False)
    sub_material_id: Mapped[str] = mapped_column(String(128), nullable=False)
    point_id: Mapped[str] = mapped_column(String(128), nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "point_id", name="uq_user_point_progress"),
        Index("ix_user_point_progress_module", "user_id", "module_id"),
    )


class SubMaterialProgressRow(Base):
    __tablename__ = "user_sub_material_rollup"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    module_id: Mapped[int] = mapped_column(Integer, nullable=False)
    sub_material_id: Mapped[str] = mapped_column(String(128), nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    progress_percentage: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "sub_material_id", name="uq_user_sub_material_rollup"
        ),
        Index("ix_user_sub_material_rollup_module", "user_id", "module_id"),
    )


class ModuleProgressRow(Base):
    """Derived; rewritten by every aggregation pass."""

    __tablename__ = "user_module_progress"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    module_id: Mapped[int] = mapped_column(Integer, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    progress_percentage: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "module_id", name="uq_user_module_progress"),
    )


# --- Detailed per-sub-material reading state ---


class SubMaterialDetailRow(Base):
    __tablename__ = "user_sub_material_progress"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    sub_material_id: Mapped[str] = mapped_column(String(128), nullable=False)
    is_unlocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    current_point_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_accessed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "sub_material_id", name="uq_user_sub_material_progress"
        ),
    )
