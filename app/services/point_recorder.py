"""Point completion recorder.

Point and sub-material ids come from the client's static content and are
not checked against the catalog; module_id is required because every
rollup groups by it.

Flow for a new completion:
  upsert point row (fatal on failure)
  -> touch sub-material rollup   (best effort)
  -> recompute module rollup     (best effort)

A point that is already completed is returned as-is with status
ALREADY_COMPLETED and triggers nothing.
"""

from __future__ import annotations

import logging

from app.core.errors import PersistenceError, debug_details, parse_module_id
from app.core.metrics import PROGRESS_COMPLETIONS
from app.models.progress import CompletionStatus, PointCompletion, PointProgress, utcnow
from app.repos.progress_store import StoreError
from app.services.best_effort import run_best_effort
from app.services.progress_aggregator import recalculate_module
from app.services.sub_material_rollup import touch_sub_material
from app.services.write_policy import ProgressStoreHandle

logger = logging.getLogger(__name__)


def _point_error(e: StoreError) -> PersistenceError:
    return PersistenceError(
        "POINT_PROGRESS_ERROR",
        "Failed to save point progress",
        details=debug_details(e),
    )


async def complete_point(
    store: ProgressStoreHandle,
    user_id: str,
    module_id: int | str | None,
    sub_material_id: str,
    point_id: str,
) -> PointCompletion:
    module = parse_module_id(module_id)

    try:
        existing = await store.reader.get_point(user_id, point_id)
    except StoreError as e:
        logger.error("Point lookup failed user=%s point=%s", user_id, point_id)
        raise _point_error(e) from e

    if existing is not None and existing.is_completed:
        logger.debug("Point already completed user=%s point=%s", user_id, point_id)
        PROGRESS_COMPLETIONS.labels(entity="point", result="already_completed").inc()
        return PointCompletion(status=CompletionStatus.ALREADY_COMPLETED, progress=existing)

    record = PointProgress.completed(
        user_id=user_id,
        module_id=module,
        sub_material_id=sub_material_id,
        point_id=point_id,
        now=utcnow(),
    )
    try:
        progress = await store.write(
            "upsert_point", lambda s: s.upsert_point_completed(record)
        )
    except StoreError as e:
        logger.error(
            "Failed to save point progress user=%s point=%s kind=%s",
            user_id,
            point_id,
            e.kind,
        )
        raise _point_error(e) from e

    PROGRESS_COMPLETIONS.labels(entity="point", result="completed").inc()
    logger.info(
        "Point completed user=%s module=%d sub_material=%s point=%s",
        user_id,
        module,
        sub_material_id,
        point_id,
    )

    touched = await run_best_effort(
        "touch_sub_material",
        lambda: touch_sub_material(store, user_id, sub_material_id, module),
        user_id=user_id,
        sub_material_id=sub_material_id,
    )
    recalculated = await run_best_effort(
        "recalculate_module",
        lambda: recalculate_module(store, user_id, module, trigger="point"),
        user_id=user_id,
        module_id=module,
    )
    return PointCompletion(
        status=CompletionStatus.COMPLETED,
        progress=progress,
        rollups=(touched, recalculated),
    )
