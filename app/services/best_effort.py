"""Best-effort execution of downstream rollup steps.

Once a completion's primary row is written, the follow-up rollups
(sub-material touch, module recompute) only affect freshness.  A failure
there is logged, counted, and returned as a RollupOutcome; it never
reaches the caller.  The next module list read recomputes every module
and repairs whatever was skipped.

WHY NOT FAIL THE REQUEST
--------------------------
The learner finished the point.  That fact is already stored, and a 500
would make the client retry a write that succeeded.  The rollups are
derived data: the module percentage can always be rebuilt from the
sub-material rows, so losing one recompute costs freshness, not
correctness.

WHY RETURN AN OUTCOME INSTEAD OF SWALLOWING
---------------------------------------------
A bare try/except-pass hides the failure from everyone.  Returning
``RollupOutcome(ok=False, error=...)`` lets the HTTP layer report which
stage failed, and lets tests assert on it without scraping logs.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from app.core.metrics import ROLLUP_FAILURES
from app.models.progress import RollupOutcome

logger = logging.getLogger(__name__)


async def run_best_effort(
    stage: str,
    fn: Callable[[], Awaitable[object]],
    **context: object,
) -> RollupOutcome:
    try:
        await fn()
    except Exception as e:
        logger.warning(
            "Rollup step failed stage=%s; leaving it to the next recompute",
            stage,
            exc_info=True,
            extra={"stage": stage, **context},
        )
        ROLLUP_FAILURES.labels(stage=stage).inc()
        return RollupOutcome(stage=stage, ok=False, error=str(e))
    return RollupOutcome(stage=stage, ok=True)
