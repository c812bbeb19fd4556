"""PostgreSQL implementation of CatalogRepo (read-only)."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import CatalogPointRow, SubMaterialRow
from app.models.catalog import CatalogSubMaterial


class PgCatalogRepo:
    """Satisfies the CatalogRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_sub_material(self, sub_material_id: str) -> CatalogSubMaterial | None:
        stmt = select(SubMaterialRow).where(SubMaterialRow.id == sub_material_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_sub_material(row)

    async def list_published_before(
        self, module_id: int, order_index: int
    ) -> list[CatalogSubMaterial]:
        stmt = (
            select(SubMaterialRow)
            .where(
                SubMaterialRow.module_id == module_id,
                SubMaterialRow.published.is_(True),
                SubMaterialRow.order_index < order_index,
            )
            .order_by(SubMaterialRow.order_index.asc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_sub_material(r) for r in rows]

    async def count_points(self, sub_material_id: str) -> int:
        stmt = select(func.count()).where(
            CatalogPointRow.sub_material_id == sub_material_id
        )
        return int((await self._session.execute(stmt)).scalar_one())


def _row_to_sub_material(row: SubMaterialRow) -> CatalogSubMaterial:
    return CatalogSubMaterial(
        id=row.id,
        module_id=row.module_id,
        order_index=row.order_index,
        published=row.published,
        title=row.title or "",
    )
