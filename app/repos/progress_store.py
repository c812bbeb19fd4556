"""Progress store interface and in-memory implementation.

Every write is a single upsert keyed by the record's natural key, so
concurrent callers converge on one row per key:

  point         (user_id, point_id)
  sub-material  (user_id, sub_material_id)
  module        (user_id, module_id)
  detail        (user_id, sub_material_id)

The PostgreSQL implementation lives in pg_progress_store.py.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import replace
from datetime import datetime
from enum import StrEnum
from typing import Protocol

from app.models.progress import (
    ModuleProgress,
    PointProgress,
    SubMaterialDetail,
    SubMaterialProgress,
)


class StoreErrorKind(StrEnum):
    PERMISSION_DENIED = "permission_denied"
    UNIQUE_VIOLATION = "unique_violation"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class StoreError(Exception):
    """Storage failure, classified by kind rather than by message text."""

    def __init__(self, kind: StoreErrorKind, message: str) -> None:
        self.kind = kind
        super().__init__(message)


class ProgressStore(Protocol):
    # --- points ---
    async def get_point(self, user_id: str, point_id: str) -> PointProgress | None: ...
    async def upsert_point_completed(self, record: PointProgress) -> PointProgress: ...
    async def list_points(self, user_id: str, module_id: int) -> list[PointProgress]: ...

    # --- sub-material rollups ---
    async def touch_sub_material(
        self, record: SubMaterialProgress
    ) -> SubMaterialProgress: ...
    async def finalize_sub_material(
        self, record: SubMaterialProgress
    ) -> SubMaterialProgress: ...
    async def list_sub_materials(
        self, user_id: str, module_id: int
    ) -> list[SubMaterialProgress]: ...
    async def completed_sub_material_ids(
        self, user_id: str, sub_material_ids: Collection[str]
    ) -> set[str]: ...

    # --- module rollups ---
    async def get_module(self, user_id: str, module_id: int) -> ModuleProgress | None: ...
    async def upsert_module(self, record: ModuleProgress) -> ModuleProgress: ...
    async def list_modules(self, user_id: str) -> list[ModuleProgress]: ...

    # --- detailed sub-material records ---
    async def get_detail(
        self, user_id: str, sub_material_id: str
    ) -> SubMaterialDetail | None: ...
    async def insert_detail(self, record: SubMaterialDetail) -> SubMaterialDetail: ...
    async def mark_detail_accessed(
        self, user_id: str, sub_material_id: str, now: datetime
    ) -> None: ...


class InMemoryProgressStore:
    """Dict-backed store for dev and tests.

    Mirrors the ON CONFLICT semantics of the PostgreSQL store; the
    conftest autouse fixture calls clear() between tests.
    """

    def __init__(self) -> None:
        self._points: dict[tuple[str, str], PointProgress] = {}
        self._sub_materials: dict[tuple[str, str], SubMaterialProgress] = {}
        self._modules: dict[tuple[str, int], ModuleProgress] = {}
        self._details: dict[tuple[str, str], SubMaterialDetail] = {}

    def clear(self) -> None:
        self._points.clear()
        self._sub_materials.clear()
        self._modules.clear()
        self._details.clear()

    # --- points ---

    async def get_point(self, user_id: str, point_id: str) -> PointProgress | None:
        return self._points.get((user_id, point_id))

    async def upsert_point_completed(self, record: PointProgress) -> PointProgress:
        key = (record.user_id, record.point_id)
        existing = self._points.get(key)
        if existing is None:
            stored = record
        else:
            stored = replace(
                existing,
                module_id=record.module_id,
                sub_material_id=record.sub_material_id,
                is_completed=True,
                completed_at=existing.completed_at or record.completed_at,
                updated_at=record.updated_at,
            )
        self._points[key] = stored
        return stored

    async def list_points(self, user_id: str, module_id: int) -> list[PointProgress]:
        rows = [
            p
            for p in self._points.values()
            if p.user_id == user_id and p.module_id == module_id
        ]
        return sorted(rows, key=lambda p: p.created_at)

    # --- sub-material rollups ---

    async def touch_sub_material(
        self, record: SubMaterialProgress
    ) -> SubMaterialProgress:
        key = (record.user_id, record.sub_material_id)
        existing = self._sub_materials.get(key)
        if existing is None:
            stored = record
        else:
            # Completion state and percentage belong to finalize
            stored = replace(existing, updated_at=record.updated_at)
        self._sub_materials[key] = stored
        return stored

    async def finalize_sub_material(
        self, record: SubMaterialProgress
    ) -> SubMaterialProgress:
        key = (record.user_id, record.sub_material_id)
        existing = self._sub_materials.get(key)
        if existing is None:
            stored = replace(
                record,
                is_completed=True,
                progress_percentage=100.0,
                completed_at=record.completed_at or record.updated_at,
            )
        else:
            stored = replace(
                existing,
                module_id=record.module_id,
                is_completed=True,
                progress_percentage=100.0,
                completed_at=existing.completed_at
                or record.completed_at
                or record.updated_at,
                updated_at=record.updated_at,
            )
        self._sub_materials[key] = stored
        return stored

    async def list_sub_materials(
        self, user_id: str, module_id: int
    ) -> list[SubMaterialProgress]:
        rows = [
            s
            for s in self._sub_materials.values()
            if s.user_id == user_id and s.module_id == module_id
        ]
        return sorted(rows, key=lambda s: s.created_at)

    async def completed_sub_material_ids(
        self, user_id: str, sub_material_ids: Collection[str]
    ) -> set[str]:
        wanted = set(sub_material_ids)
        return {
            s.sub_material_id
            for s in self._sub_materials.values()
            if s.user_id == user_id and s.is_completed and s.sub_material_id in wanted
        }

    # --- module rollups ---

    async def get_module(self, user_id: str, module_id: int) -> ModuleProgress | None:
        return self._modules.get((user_id, module_id))

    async def upsert_module(self, record: ModuleProgress) -> ModuleProgress:
        key = (record.user_id, record.module_id)
        existing = self._modules.get(key)
        if existing is None:
            stored = record
        else:
            completed_at = None
            if record.is_completed:
                completed_at = existing.completed_at or record.completed_at
            stored = replace(
                existing,
                progress_percentage=record.progress_percentage,
                is_completed=record.is_completed,
                completed_at=completed_at,
                updated_at=record.updated_at,
            )
        self._modules[key] = stored
        return stored

    async def list_modules(self, user_id: str) -> list[ModuleProgress]:
        rows = [m for m in self._modules.values() if m.user_id == user_id]
        return sorted(rows, key=lambda m: m.updated_at, reverse=True)

    # --- detailed sub-material records ---

    async def get_detail(
        self, user_id: str, sub_material_id: str
    ) -> SubMaterialDetail | None:
        return self._details.get((user_id, sub_material_id))

    async def insert_detail(self, record: SubMaterialDetail) -> SubMaterialDetail:
        # ON CONFLICT DO NOTHING: a concurrent first read wins
        return self._details.setdefault((record.user_id, record.sub_material_id), record)

    async def mark_detail_accessed(
        self, user_id: str, sub_material_id: str, now: datetime
    ) -> None:
        key = (user_id, sub_material_id)
        existing = self._details.get(key)
        if existing is not None:
            self._details[key] = replace(existing, last_accessed_at=now)
