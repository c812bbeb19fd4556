"""Read paths over the progress store.

get_module_progress is a pure read.  list_user_modules_progress is the
self-healing read: it recomputes every module the learner has a row for
before answering, so rollups skipped by failed best-effort steps are
repaired the next time the dashboard loads.

WHY HEAL ON READ
------------------
Completions recompute their module best-effort, so a failed recompute
leaves a stale ModuleProgress row behind.  Nothing else would ever fix
it: there is no background job, and the learner may never touch that
module again.  The module list is the read that shows those rows, so it
is the one place where recomputing first is guaranteed to matter.

WHY THE SNAPSHOT FALLBACK
---------------------------
The list is fetched once before healing.  If the refetch after healing
fails, that snapshot is still a valid (if slightly stale) answer, and
serving it beats a 500 on the dashboard.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from app.core.errors import (
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    debug_details,
)
from app.models.principal import Principal
from app.models.progress import (
    ModuleProgress,
    ModuleProgressBundle,
    PointProgress,
    SubMaterialDetail,
    SubMaterialProgress,
    utcnow,
)
from app.repos.catalog_repo import CatalogRepo
from app.repos.progress_store import StoreError
from app.services.progress_aggregator import recalculate_module
from app.services.write_policy import ProgressStoreHandle

logger = logging.getLogger(__name__)

_DEFAULT_SEED_PERCENT = 5


async def get_module_progress(
    store: ProgressStoreHandle, user_id: str, module_id: int
) -> ModuleProgressBundle:
    reader = store.reader
    try:
        module = await reader.get_module(user_id, module_id)
    except StoreError as e:
        logger.error(
            "Failed to read module progress user=%s module=%d kind=%s",
            user_id,
            module_id,
            e.kind,
        )
        raise PersistenceError(
            "MODULE_PROGRESS_ERROR",
            "Failed to fetch module progress",
            details=debug_details(e),
        ) from e

    sub_materials: list[SubMaterialProgress] = []
    try:
        sub_materials = await reader.list_sub_materials(user_id, module_id)
    except StoreError:
        logger.warning(
            "Sub-material progress unavailable user=%s module=%d",
            user_id,
            module_id,
            exc_info=True,
        )

    points: list[PointProgress] = []
    try:
        points = await reader.list_points(user_id, module_id)
    except StoreError:
        logger.warning(
            "Point progress unavailable user=%s module=%d",
            user_id,
            module_id,
            exc_info=True,
        )

    return ModuleProgressBundle(
        module_id=module_id,
        module_progress=module,
        sub_materials=tuple(sub_materials),
        points=tuple(points),
    )


async def list_user_modules_progress(
    store: ProgressStoreHandle, user_id: str
) -> list[ModuleProgress]:
    try:
        snapshot = await store.reader.list_modules(user_id)
    except StoreError as e:
        logger.error("Failed to list module progress user=%s kind=%s", user_id, e.kind)
        raise PersistenceError(
            "PROGRESS_FETCH_ERROR",
            "Failed to fetch user progress",
            details=debug_details(e),
        ) from e

    for module in snapshot:
        try:
            await recalculate_module(store, user_id, module.module_id, trigger="list_read")
        except StoreError:
            logger.warning(
                "Module recompute failed during list user=%s module=%d",
                user_id,
                module.module_id,
                exc_info=True,
            )

    try:
        return await store.reader.list_modules(user_id)
    except StoreError:
        logger.warning(
            "Refetch after recompute failed, serving snapshot user=%s",
            user_id,
            exc_info=True,
        )
        return snapshot


def seed_percent(point_count: int) -> int:
    """Initial progress shown for a sub-material the learner just opened."""
    if point_count <= 0:
        return _DEFAULT_SEED_PERCENT
    return int(100 / (point_count + 1) + 0.5)


async def get_sub_material_progress(
    store: ProgressStoreHandle,
    catalog: CatalogRepo,
    principal: Principal,
    sub_material_id: str,
) -> SubMaterialDetail:
    """Detailed reading state for one sub-material, created on first access.

    Unpublished sub-materials are visible to admins only.  If the record
    cannot be created, a transient unsaved record (``id`` None) is returned
    so the reader can still render.
    """
    sub_material = await catalog.get_sub_material(sub_material_id)
    if sub_material is None:
        raise NotFoundError("SUB_MATERIAL_NOT_FOUND", "Sub-material not found")
    if not sub_material.published and not principal.is_admin():
        raise ForbiddenError(
            "SUB_MATERIAL_NOT_PUBLISHED", "Sub-material is not published"
        )

    user_id = principal.user_id
    try:
        detail = await store.reader.get_detail(user_id, sub_material_id)
    except StoreError as e:
        logger.error(
            "Failed to read sub-material progress user=%s sub_material=%s kind=%s",
            user_id,
            sub_material_id,
            e.kind,
        )
        raise PersistenceError(
            "PROGRESS_FETCH_ERROR",
            "Failed to fetch sub-material progress",
            details=debug_details(e),
        ) from e

    now = utcnow()
    if detail is not None:
        try:
            await store.write(
                "mark_detail_accessed",
                lambda s: s.mark_detail_accessed(user_id, sub_material_id, now),
            )
        except StoreError:
            logger.warning(
                "Failed to update last access user=%s sub_material=%s",
                user_id,
                sub_material_id,
                exc_info=True,
            )
        return detail

    points = await catalog.count_points(sub_material_id)
    record = SubMaterialDetail.initial(
        user_id=user_id,
        sub_material_id=sub_material_id,
        progress_percent=seed_percent(points),
        now=now,
    )
    try:
        return await store.write("insert_detail", lambda s: s.insert_detail(record))
    except StoreError:
        logger.warning(
            "Failed to create sub-material progress, returning transient record "
            "user=%s sub_material=%s",
            user_id,
            sub_material_id,
            exc_info=True,
        )
        return replace(record, id=None)
