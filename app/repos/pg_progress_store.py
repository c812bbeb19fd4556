"""PostgreSQL implementation of ProgressStore."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Collection
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import case, func, select, update
from sqlalchemy import exc as sa_exc
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import (
    ModuleProgressRow,
    PointProgressRow,
    SubMaterialDetailRow,
    SubMaterialProgressRow,
)
from app.models.progress import (
    ModuleProgress,
    PointProgress,
    SubMaterialDetail,
    SubMaterialProgress,
)
from app.repos.progress_store import StoreError, StoreErrorKind

# SQLSTATE classes, see https://www.postgresql.org/docs/current/errcodes-appendix.html
_SQLSTATE_KINDS = {
    "42501": StoreErrorKind.PERMISSION_DENIED,  # insufficient_privilege (incl. RLS)
    "23505": StoreErrorKind.UNIQUE_VIOLATION,
    "57P01": StoreErrorKind.UNAVAILABLE,  # admin_shutdown
    "53300": StoreErrorKind.UNAVAILABLE,  # too_many_connections
}


def classify_db_error(error: sa_exc.DBAPIError) -> StoreErrorKind:
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _SQLSTATE_KINDS:
        return _SQLSTATE_KINDS[sqlstate]
    if isinstance(error, (sa_exc.OperationalError, sa_exc.InterfaceError)):
        return StoreErrorKind.UNAVAILABLE
    return StoreErrorKind.UNKNOWN


class PgProgressStore:
    """Satisfies the ProgressStore Protocol using PostgreSQL.

    Each call runs inside a SAVEPOINT so a failed statement rolls back on
    its own and leaves the request transaction usable.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @asynccontextmanager
    async def _savepoint(self) -> AsyncGenerator[None, None]:
        try:
            async with self._session.begin_nested():
                yield
        except sa_exc.DBAPIError as e:
            raise StoreError(classify_db_error(e), str(e.orig)) from e
        except sa_exc.TimeoutError as e:
            raise StoreError(StoreErrorKind.UNAVAILABLE, str(e)) from e

    # --- points ---

    async def get_point(self, user_id: str, point_id: str) -> PointProgress | None:
        stmt = select(PointProgressRow).where(
            PointProgressRow.user_id == user_id,
            PointProgressRow.point_id == point_id,
        )
        async with self._savepoint():
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return None if row is None else _row_to_point(row)

    async def upsert_point_completed(self, record: PointProgress) -> PointProgress:
        insert_stmt = pg_insert(PointProgressRow).values(
            id=record.id,
            user_id=record.user_id,
            module_id=record.module_id,
            sub_material_id=record.sub_material_id,
            point_id=record.point_id,
            is_completed=True,
            completed_at=record.completed_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
        stmt = (
            insert_stmt.on_conflict_do_update(
                constraint="uq_user_point_progress",
                set_={
                    "module_id": insert_stmt.excluded.module_id,
                    "sub_material_id": insert_stmt.excluded.sub_material_id,
                    "is_completed": True,
                    "completed_at": func.coalesce(
                        PointProgressRow.completed_at, insert_stmt.excluded.completed_at
                    ),
                    "updated_at": insert_stmt.excluded.updated_at,
                },
            )
            .returning(PointProgressRow)
            .execution_options(populate_existing=True)
        )
        async with self._savepoint():
            row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_point(row)

    async def list_points(self, user_id: str, module_id: int) -> list[PointProgress]:
        stmt = (
            select(PointProgressRow)
            .where(
                PointProgressRow.user_id == user_id,
                PointProgressRow.module_id == module_id,
            )
            .order_by(PointProgressRow.created_at.asc())
        )
        async with self._savepoint():
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_point(r) for r in rows]

    # --- sub-material rollups ---

    async def touch_sub_material(
        self, record: SubMaterialProgress
    ) -> SubMaterialProgress:
        insert_stmt = pg_insert(SubMaterialProgressRow).values(
            id=record.id,
            user_id=record.user_id,
            module_id=record.module_id,
            sub_material_id=record.sub_material_id,
            is_completed=False,
            progress_percentage=0.0,
            completed_at=None,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
        # Only updated_at moves; completion state is finalize's business.
        stmt = (
            insert_stmt.on_conflict_do_update(
                constraint="uq_user_sub_material_rollup",
                set_={"updated_at": insert_stmt.excluded.updated_at},
            )
            .returning(SubMaterialProgressRow)
            .execution_options(populate_existing=True)
        )
        async with self._savepoint():
            row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_sub_material(row)

    async def finalize_sub_material(
        self, record: SubMaterialProgress
    ) -> SubMaterialProgress:
        completed_at = record.completed_at or record.updated_at
        insert_stmt = pg_insert(SubMaterialProgressRow).values(
            id=record.id,
            user_id=record.user_id,
            module_id=record.module_id,
            sub_material_id=record.sub_material_id,
            is_completed=True,
            progress_percentage=100.0,
            completed_at=completed_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
        stmt = (
            insert_stmt.on_conflict_do_update(
                constraint="uq_user_sub_material_rollup",
                set_={
                    "module_id": insert_stmt.excluded.module_id,
                    "is_completed": True,
                    "progress_percentage": 100.0,
                    "completed_at": func.coalesce(
                        SubMaterialProgressRow.completed_at,
                        insert_stmt.excluded.completed_at,
                    ),
                    "updated_at": insert_stmt.excluded.updated_at,
                },
            )
            .returning(SubMaterialProgressRow)
            .execution_options(populate_existing=True)
        )
        async with self._savepoint():
            row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_sub_material(row)

    async def list_sub_materials(
        self, user_id: str, module_id: int
    ) -> list[SubMaterialProgress]:
        stmt = (
            select(SubMaterialProgressRow)
            .where(
                SubMaterialProgressRow.user_id == user_id,
                SubMaterialProgressRow.module_id == module_id,
            )
            .order_by(SubMaterialProgressRow.created_at.asc())
        )
        async with self._savepoint():
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_sub_material(r) for r in rows]

    async def completed_sub_material_ids(
        self, user_id: str, sub_material_ids: Collection[str]
    ) -> set[str]:
        if not sub_material_ids:
            return set()
        stmt = select(SubMaterialProgressRow.sub_material_id).where(
            SubMaterialProgressRow.user_id == user_id,
            SubMaterialProgressRow.is_completed.is_(True),
            SubMaterialProgressRow.sub_material_id.in_(list(sub_material_ids)),
        )
        async with self._savepoint():
            ids = (await self._session.execute(stmt)).scalars().all()
        return set(ids)

    # --- module rollups ---

    async def get_module(self, user_id: str, module_id: int) -> ModuleProgress | None:
        stmt = select(ModuleProgressRow).where(
            ModuleProgressRow.user_id == user_id,
            ModuleProgressRow.module_id == module_id,
        )
        async with self._savepoint():
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return None if row is None else _row_to_module(row)

    async def upsert_module(self, record: ModuleProgress) -> ModuleProgress:
        insert_stmt = pg_insert(ModuleProgressRow).values(
            id=record.id,
            user_id=record.user_id,
            module_id=record.module_id,
            is_completed=record.is_completed,
            progress_percentage=record.progress_percentage,
            completed_at=record.completed_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
        excluded = insert_stmt.excluded
        stmt = (
            insert_stmt.on_conflict_do_update(
                constraint="uq_user_module_progress",
                set_={
                    "is_completed": excluded.is_completed,
                    "progress_percentage": excluded.progress_percentage,
                    # Keep the original completion time while it stays completed
                    "completed_at": case(
                        (
                            excluded.is_completed,
                            func.coalesce(
                                ModuleProgressRow.completed_at, excluded.completed_at
                            ),
                        ),
                        else_=None,
                    ),
                    "updated_at": excluded.updated_at,
                },
            )
            .returning(ModuleProgressRow)
            .execution_options(populate_existing=True)
        )
        async with self._savepoint():
            row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_module(row)

    async def list_modules(self, user_id: str) -> list[ModuleProgress]:
        stmt = (
            select(ModuleProgressRow)
            .where(ModuleProgressRow.user_id == user_id)
            .order_by(ModuleProgressRow.updated_at.desc())
        )
        async with self._savepoint():
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_module(r) for r in rows]

    # --- detailed sub-material records ---

    async def get_detail(
        self, user_id: str, sub_material_id: str
    ) -> SubMaterialDetail | None:
        stmt = select(SubMaterialDetailRow).where(
            SubMaterialDetailRow.user_id == user_id,
            SubMaterialDetailRow.sub_material_id == sub_material_id,
        )
        async with self._savepoint():
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return None if row is None else _row_to_detail(row)

    async def insert_detail(self, record: SubMaterialDetail) -> SubMaterialDetail:
        stmt = (
            pg_insert(SubMaterialDetailRow)
            .values(
                id=record.id,
                user_id=record.user_id,
                sub_material_id=record.sub_material_id,
                is_unlocked=record.is_unlocked,
                is_completed=record.is_completed,
                current_point_index=record.current_point_index,
                progress_percent=record.progress_percent,
                last_accessed_at=record.last_accessed_at,
                created_at=record.created_at,
                updated_at=record.updated_at,
            )
            .on_conflict_do_nothing(constraint="uq_user_sub_material_progress")
        )
        async with self._savepoint():
            await self._session.execute(stmt)
        stored = await self.get_detail(record.user_id, record.sub_material_id)
        if stored is None:
            raise StoreError(
                StoreErrorKind.UNKNOWN, "detail row missing after insert"
            )
        return stored

    async def mark_detail_accessed(
        self, user_id: str, sub_material_id: str, now: datetime
    ) -> None:
        stmt = (
            update(SubMaterialDetailRow)
            .where(
                SubMaterialDetailRow.user_id == user_id,
                SubMaterialDetailRow.sub_material_id == sub_material_id,
            )
            .values(last_accessed_at=now)
        )
        async with self._savepoint():
            await self._session.execute(stmt)


def _row_to_point(row: PointProgressRow) -> PointProgress:
    return PointProgress(
        id=row.id,
        user_id=row.user_id,
        module_id=row.module_id,
        sub_material_id=row.sub_material_id,
        point_id=row.point_id,
        is_completed=row.is_completed,
        completed_at=row.completed_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_sub_material(row: SubMaterialProgressRow) -> SubMaterialProgress:
    return SubMaterialProgress(
        id=row.id,
        user_id=row.user_id,
        module_id=row.module_id,
        sub_material_id=row.sub_material_id,
        is_completed=row.is_completed,
        progress_percentage=row.progress_percentage or 0.0,
        completed_at=row.completed_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_module(row: ModuleProgressRow) -> ModuleProgress:
    return ModuleProgress(
        id=row.id,
        user_id=row.user_id,
        module_id=row.module_id,
        is_completed=row.is_completed,
        progress_percentage=row.progress_percentage or 0.0,
        completed_at=row.completed_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_detail(row: SubMaterialDetailRow) -> SubMaterialDetail:
    return SubMaterialDetail(
        id=row.id,
        user_id=row.user_id,
        sub_material_id=row.sub_material_id,
        is_unlocked=row.is_unlocked,
        is_completed=row.is_completed,
        current_point_index=row.current_point_index,
        progress_percent=row.progress_percent,
        last_accessed_at=row.last_accessed_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
