"""Two-tier write policy for the progress store.

Every engine operation receives a ``ProgressStoreHandle``: the caller's
user-scoped store plus, when configured, an elevated store.  Writes go to
the scoped store first; if that fails, the StoreError's kind picks the
next step from ``WRITE_DECISIONS``:

  kind               action
  -----------------  --------------------------------------------
  permission_denied  retry once on the elevated store (if present)
  unique_violation   raise
  unavailable        raise
  unknown            raise

The elevated retry runs the same upsert, so it keeps the same
idempotency guarantees as the scoped write.

WHY ONLY PERMISSION_DENIED FALLS BACK
---------------------------------------
A row-level-security policy that is slightly too strict shows up as
SQLSTATE 42501 on the scoped role.  The elevated role bypasses RLS, so
retrying there lets the learner's progress land while the policy gets
fixed.  A unique violation or a dead connection would fail the same way
on the elevated role; retrying just doubles the latency of the error.

WHY THE HANDLE STICKS TO THE ELEVATED STORE
----------------------------------------------
With PostgreSQL the two stores are two sessions, each in its own
transaction until the request commits.  A row written through the
elevated session is invisible to the scoped one:

  finalize sub-material   -> scoped denied -> elevated writes 100%
  recompute module        -> scoped read   -> sees nothing -> 0%   (wrong)

So after the first fallback the handle is "pinned": every later read and
write in the same request goes to the elevated store, which can see what
it wrote.  Handles are per request, so the pin never outlives it.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TypeVar

from app.core.metrics import ELEVATED_WRITES
from app.repos.progress_store import ProgressStore, StoreError, StoreErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WriteAction(StrEnum):
    RAISE = "raise"
    RETRY_ELEVATED = "retry_elevated"


WRITE_DECISIONS: dict[StoreErrorKind, WriteAction] = {
    StoreErrorKind.PERMISSION_DENIED: WriteAction.RETRY_ELEVATED,
    StoreErrorKind.UNIQUE_VIOLATION: WriteAction.RAISE,
    StoreErrorKind.UNAVAILABLE: WriteAction.RAISE,
    StoreErrorKind.UNKNOWN: WriteAction.RAISE,
}


def decide(kind: StoreErrorKind) -> WriteAction:
    return WRITE_DECISIONS.get(kind, WriteAction.RAISE)


class ProgressStoreHandle:
    __slots__ = ("scoped", "elevated", "_pinned")

    def __init__(
        self, scoped: ProgressStore, elevated: ProgressStore | None = None
    ) -> None:
        self.scoped = scoped
        self.elevated = elevated
        self._pinned = False

    @property
    def pinned_to_elevated(self) -> bool:
        return self._pinned

    @property
    def reader(self) -> ProgressStore:
        if self._pinned and self.elevated is not None:
            return self.elevated
        return self.scoped

    async def write(
        self, operation: str, fn: Callable[[ProgressStore], Awaitable[T]]
    ) -> T:
        """Run ``fn`` against the scoped store, falling back per WRITE_DECISIONS."""
        if self._pinned and self.elevated is not None:
            ELEVATED_WRITES.labels(operation=operation).inc()
            return await fn(self.elevated)
        try:
            return await fn(self.scoped)
        except StoreError as e:
            action = decide(e.kind)
            if action is not WriteAction.RETRY_ELEVATED or self.elevated is None:
                raise
            logger.warning(
                "Scoped write denied, retrying on elevated store operation=%s",
                operation,
            )
            ELEVATED_WRITES.labels(operation=operation).inc()
            result = await fn(self.elevated)
            self._pinned = True
            return result
