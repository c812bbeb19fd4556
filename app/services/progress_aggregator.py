"""Module aggregation: the single reconciliation point for module rollups.

recalculate_module() derives a module's row from the learner's
sub-material rows and nothing else:

  progress_percentage = mean of the existing rows' percentages, rounded
                        half-up to 2 decimals (0 when there are no rows)
  is_completed        = at least one row and every row completed

Sub-materials without a row are not counted; the catalog's full
sub-material list is not consulted.  The pass is cheap and idempotent, so
callers run it after every completion and again on the module list read.
Store errors propagate; completion callers wrap this in run_best_effort.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from app.core.metrics import MODULE_RECALCULATIONS
from app.models.progress import ModuleProgress, ModuleRollup, SubMaterialProgress, utcnow
from app.services.write_policy import ProgressStoreHandle

logger = logging.getLogger(__name__)

_TWO_PLACES = Decimal("0.01")


def average_percentage(percentages: Iterable[float | None]) -> float:
    values = [Decimal(str(p or 0)) for p in percentages]
    if not values:
        return 0.0
    mean = sum(values, Decimal(0)) / len(values)
    return float(mean.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def summarize(rows: list[SubMaterialProgress]) -> tuple[float, bool]:
    """(percentage, completed) for a set of sub-material rows."""
    if not rows:
        return 0.0, False
    percentage = average_percentage(r.progress_percentage for r in rows)
    return percentage, all(r.is_completed for r in rows)


async def recalculate_module(
    store: ProgressStoreHandle,
    user_id: str,
    module_id: int,
    *,
    trigger: str = "direct",
) -> ModuleRollup:
    MODULE_RECALCULATIONS.labels(trigger=trigger).inc()
    rows = await store.reader.list_sub_materials(user_id, module_id)
    percentage, completed = summarize(rows)

    if not rows:
        logger.info(
            "No sub-material progress yet, module at 0%% user=%s module=%d",
            user_id,
            module_id,
        )
    else:
        logger.debug(
            "Module progress computed user=%s module=%d rows=%d completed_rows=%d "
            "percentage=%.2f completed=%s",
            user_id,
            module_id,
            len(rows),
            sum(1 for r in rows if r.is_completed),
            percentage,
            completed,
        )

    record = ModuleProgress.new(
        user_id=user_id,
        module_id=module_id,
        progress_percentage=percentage,
        is_completed=completed,
        now=utcnow(),
    )
    stored = await store.write("upsert_module", lambda s: s.upsert_module(record))
    return ModuleRollup(
        progress_percentage=stored.progress_percentage,
        is_completed=stored.is_completed,
        module_progress=stored,
    )
