"""Sub-material rollup rows: touch and finalize.

touch:    records that the learner is working in a sub-material.  Creates
          an incomplete 0% row if none exists, otherwise only refreshes
          updated_at.  It never computes a percentage from completed
          points (the total point count is a catalog fact the client
          owns) and never undoes a finalize.
finalize: the client's explicit "this sub-material is done" signal.  Sets
          the row to completed / 100% and recomputes the module.
"""

from __future__ import annotations

import logging

from app.core.errors import PersistenceError, debug_details, parse_module_id
from app.core.metrics import PROGRESS_COMPLETIONS
from app.models.progress import SubMaterialCompletion, SubMaterialProgress, utcnow
from app.repos.progress_store import StoreError
from app.services.best_effort import run_best_effort
from app.services.progress_aggregator import recalculate_module
from app.services.write_policy import ProgressStoreHandle

logger = logging.getLogger(__name__)


async def touch_sub_material(
    store: ProgressStoreHandle,
    user_id: str,
    sub_material_id: str,
    module_id: int,
) -> SubMaterialProgress:
    record = SubMaterialProgress.new(
        user_id=user_id,
        module_id=module_id,
        sub_material_id=sub_material_id,
        now=utcnow(),
    )
    stored = await store.write(
        "touch_sub_material", lambda s: s.touch_sub_material(record)
    )
    logger.debug(
        "Sub-material touched user=%s sub_material=%s completed=%s",
        user_id,
        sub_material_id,
        stored.is_completed,
    )
    return stored


async def complete_sub_material(
    store: ProgressStoreHandle,
    user_id: str,
    module_id: int | str | None,
    sub_material_id: str,
) -> SubMaterialCompletion:
    """Finalize a sub-material at 100%, then recompute its module.

    Repeating the call leaves the same end state; the first completion
    time is kept.
    """
    module = parse_module_id(module_id)
    now = utcnow()
    record = SubMaterialProgress.new(
        user_id=user_id,
        module_id=module,
        sub_material_id=sub_material_id,
        now=now,
        is_completed=True,
    )

    try:
        progress = await store.write(
            "finalize_sub_material", lambda s: s.finalize_sub_material(record)
        )
    except StoreError as e:
        logger.error(
            "Failed to finalize sub-material user=%s sub_material=%s kind=%s",
            user_id,
            sub_material_id,
            e.kind,
        )
        raise PersistenceError(
            "PROGRESS_UPDATE_ERROR",
            "Failed to update sub-material progress",
            details=debug_details(e),
        ) from e

    PROGRESS_COMPLETIONS.labels(entity="sub_material", result="completed").inc()
    logger.info(
        "Sub-material completed user=%s module=%d sub_material=%s",
        user_id,
        module,
        sub_material_id,
    )

    outcome = await run_best_effort(
        "recalculate_module",
        lambda: recalculate_module(store, user_id, module, trigger="sub_material"),
        user_id=user_id,
        module_id=module,
    )
    return SubMaterialCompletion(progress=progress, rollups=(outcome,))
