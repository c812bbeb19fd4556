from __future__ import annotations

from typing import Protocol

from app.models.catalog import CatalogSubMaterial


class CatalogRepo(Protocol):
    async def get_sub_material(self, sub_material_id: str) -> CatalogSubMaterial | None: ...
    async def list_published_before(
        self, module_id: int, order_index: int
    ) -> list[CatalogSubMaterial]: ...
    async def count_points(self, sub_material_id: str) -> int: ...


class InMemoryCatalogRepo:
    def __init__(self) -> None:
        self._sub_materials: dict[str, CatalogSubMaterial] = {}
        self._point_counts: dict[str, int] = {}

    def add(self, sub_material: CatalogSubMaterial, *, points: int = 0) -> None:
        self._sub_materials[sub_material.id] = sub_material
        self._point_counts[sub_material.id] = points

    def clear(self) -> None:
        self._sub_materials.clear()
        self._point_counts.clear()

    async def get_sub_material(self, sub_material_id: str) -> CatalogSubMaterial | None:
        return self._sub_materials.get(sub_material_id)

    async def list_published_before(
        self, module_id: int, order_index: int
    ) -> list[CatalogSubMaterial]:
        rows = [
            s
            for s in self._sub_materials.values()
            if s.module_id == module_id and s.published and s.order_index < order_index
        ]
        return sorted(rows, key=lambda s: s.order_index)

    async def count_points(self, sub_material_id: str) -> int:
        return self._point_counts.get(sub_material_id, 0)
