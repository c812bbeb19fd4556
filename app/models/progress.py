from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class PointProgress:
    """One learner's completion of one point. Keyed by (user_id, point_id)."""

    id: UUID
    user_id: str
    module_id: int
    sub_material_id: str
    point_id: str
    is_completed: bool
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def completed(
        *,
        user_id: str,
        module_id: int,
        sub_material_id: str,
        point_id: str,
        now: datetime,
    ) -> PointProgress:
        return PointProgress(
            id=uuid4(),
            user_id=user_id,
            module_id=module_id,
            sub_material_id=sub_material_id,
            point_id=point_id,
            is_completed=True,
            completed_at=now,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True, slots=True)
class SubMaterialProgress:
    """Sub-material rollup row. Keyed by (user_id, sub_material_id).

    progress_percentage is 0 until the client finalizes the sub-material,
    then exactly 100.
    """

    id: UUID
    user_id: str
    module_id: int
    sub_material_id: str
    is_completed: bool
    progress_percentage: float
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def new(
        *,
        user_id: str,
        module_id: int,
        sub_material_id: str,
        now: datetime,
        is_completed: bool = False,
    ) -> SubMaterialProgress:
        return SubMaterialProgress(
            id=uuid4(),
            user_id=user_id,
            module_id=module_id,
            sub_material_id=sub_material_id,
            is_completed=is_completed,
            progress_percentage=100.0 if is_completed else 0.0,
            completed_at=now if is_completed else None,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True, slots=True)
class ModuleProgress:
    """Derived module summary. Only the aggregator writes these."""

    id: UUID
    user_id: str
    module_id: int
    is_completed: bool
    progress_percentage: float
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def new(
        *,
        user_id: str,
        module_id: int,
        progress_percentage: float,
        is_completed: bool,
        now: datetime,
    ) -> ModuleProgress:
        return ModuleProgress(
            id=uuid4(),
            user_id=user_id,
            module_id=module_id,
            is_completed=is_completed,
            progress_percentage=progress_percentage,
            completed_at=now if is_completed else None,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True, slots=True)
class SubMaterialDetail:
    """Per-learner reading state for one sub-material (the detailed record).

    Separate from the rollup rows above; it does not feed aggregation.
    ``id`` is None for a transient record that could not be saved.
    """

    id: UUID | None
    user_id: str
    sub_material_id: str
    is_unlocked: bool
    is_completed: bool
    current_point_index: int
    progress_percent: int
    last_accessed_at: datetime
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def initial(
        *, user_id: str, sub_material_id: str, progress_percent: int, now: datetime
    ) -> SubMaterialDetail:
        return SubMaterialDetail(
            id=uuid4(),
            user_id=user_id,
            sub_material_id=sub_material_id,
            is_unlocked=True,
            is_completed=False,
            current_point_index=0,
            progress_percent=progress_percent,
            last_accessed_at=now,
            created_at=now,
            updated_at=now,
        )


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


class CompletionStatus(StrEnum):
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"


@dataclass(frozen=True, slots=True)
class RollupOutcome:
    """Result of a best-effort downstream step.

    Failures are logged and dropped; the value exists so callers and tests
    can see what happened without the failure propagating.
    """

    stage: str  # touch_sub_material|recalculate_module
    ok: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class PointCompletion:
    status: CompletionStatus
    progress: PointProgress
    rollups: tuple[RollupOutcome, ...] = ()


@dataclass(frozen=True, slots=True)
class SubMaterialCompletion:
    progress: SubMaterialProgress
    rollups: tuple[RollupOutcome, ...] = ()


@dataclass(frozen=True, slots=True)
class ModuleRollup:
    progress_percentage: float
    is_completed: bool
    module_progress: ModuleProgress


@dataclass(frozen=True, slots=True)
class ModuleProgressBundle:
    """Everything recorded for one (user, module). ``module_progress`` is
    None when the aggregator has never run for this module."""

    module_id: int
    module_progress: ModuleProgress | None
    sub_materials: tuple[SubMaterialProgress, ...]
    points: tuple[PointProgress, ...]


@dataclass(frozen=True, slots=True)
class AccessDecision:
    sub_material_id: str
    can_access: bool
    reason: str = ""


def utcnow() -> datetime:
    return datetime.now(UTC)
