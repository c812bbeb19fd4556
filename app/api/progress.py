"""Progress endpoints.

Completion flow:
  POST .../points/{point_id}/complete -> point row -> sub-material touch
                                       -> module recompute
  POST /sub-materials/{id}/complete   -> finalize at 100% -> module recompute

Reads:
  GET /modules/{module_id}            pure read
  GET /modules                        self-healing: recompute, then refetch
  GET /materials/{id}/access          sequential unlock check
  GET /sub-materials/{id}             detailed reading state
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Body, Response
from pydantic import BaseModel

from app.api.dependencies import CatalogDep, CurrentUser, StoreDep
from app.api.responses import Envelope, operation_boundary
from app.core.errors import parse_module_id
from app.models.progress import (
    CompletionStatus,
    ModuleProgress,
    PointProgress,
    RollupOutcome,
    SubMaterialDetail,
    SubMaterialProgress,
)
from app.services.access_gate import can_access_sub_material
from app.services.point_recorder import complete_point
from app.services.progress_queries import (
    get_module_progress,
    get_sub_material_progress,
    list_user_modules_progress,
)
from app.services.sub_material_rollup import complete_sub_material

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/progress", tags=["progress"])

_NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class CompletionIn(BaseModel):
    # Validated by parse_module_id so clients get MISSING/INVALID_MODULE_ID
    module_id: Any = None


class PointProgressOut(BaseModel):
    id: str
    user_id: str
    module_id: int
    sub_material_id: str
    point_id: str
    is_completed: bool
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, p: PointProgress) -> PointProgressOut:
        return cls(
            id=str(p.id),
            user_id=p.user_id,
            module_id=p.module_id,
            sub_material_id=p.sub_material_id,
            point_id=p.point_id,
            is_completed=p.is_completed,
            completed_at=p.completed_at,
            created_at=p.created_at,
            updated_at=p.updated_at,
        )


class SubMaterialProgressOut(BaseModel):
    id: str
    user_id: str
    module_id: int
    sub_material_id: str
    is_completed: bool
    progress_percentage: float
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, s: SubMaterialProgress) -> SubMaterialProgressOut:
        return cls(
            id=str(s.id),
            user_id=s.user_id,
            module_id=s.module_id,
            sub_material_id=s.sub_material_id,
            is_completed=s.is_completed,
            progress_percentage=s.progress_percentage,
            completed_at=s.completed_at,
            created_at=s.created_at,
            updated_at=s.updated_at,
        )


class ModuleProgressOut(BaseModel):
    id: str
    user_id: str
    module_id: int
    is_completed: bool
    progress_percentage: float
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, m: ModuleProgress) -> ModuleProgressOut:
        return cls(
            id=str(m.id),
            user_id=m.user_id,
            module_id=m.module_id,
            is_completed=m.is_completed,
            progress_percentage=m.progress_percentage,
            completed_at=m.completed_at,
            created_at=m.created_at,
            updated_at=m.updated_at,
        )


class RollupOut(BaseModel):
    stage: str
    ok: bool

    @classmethod
    def from_model(cls, r: RollupOutcome) -> RollupOut:
        return cls(stage=r.stage, ok=r.ok)


class PointCompletionOut(BaseModel):
    status: CompletionStatus
    progress: PointProgressOut
    rollups: list[RollupOut]


class SubMaterialCompletionOut(BaseModel):
    progress: SubMaterialProgressOut
    rollups: list[RollupOut]


class ModuleDetailOut(BaseModel):
    module_id: int
    progress_percentage: float
    is_completed: bool
    completed_at: datetime | None
    module_progress: ModuleProgressOut | None
    sub_materials: list[SubMaterialProgressOut]
    points: list[PointProgressOut]


class ModuleListOut(BaseModel):
    modules: list[ModuleProgressOut]


class AccessOut(BaseModel):
    sub_material_id: str
    can_access: bool
    reason: str


class SubMaterialDetailOut(BaseModel):
    id: str
    user_id: str
    sub_material_id: str
    is_unlocked: bool
    is_completed: bool
    current_point_index: int
    progress_percent: int
    last_accessed_at: datetime
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, d: SubMaterialDetail) -> SubMaterialDetailOut:
        record_id = str(d.id) if d.id is not None else f"temp_{d.user_id}_{d.sub_material_id}"
        return cls(
            id=record_id,
            user_id=d.user_id,
            sub_material_id=d.sub_material_id,
            is_unlocked=d.is_unlocked,
            is_completed=d.is_completed,
            current_point_index=d.current_point_index,
            progress_percent=d.progress_percent,
            last_accessed_at=d.last_accessed_at,
            created_at=d.created_at,
            updated_at=d.updated_at,
        )


def _module_id_from(payload: CompletionIn | None) -> Any:
    return payload.module_id if payload is not None else None


# ---------------------------------------------------------------------------
# Completions
# ---------------------------------------------------------------------------


@router.post(
    "/materials/{sub_material_id}/points/{point_id}/complete",
    response_model=Envelope[PointCompletionOut],
)
async def post_point_complete(
    sub_material_id: str,
    point_id: str,
    principal: CurrentUser,
    store: StoreDep,
    payload: Annotated[CompletionIn | None, Body()] = None,
) -> Envelope[PointCompletionOut]:
    with operation_boundary("complete_point"):
        result = await complete_point(
            store,
            principal.user_id,
            _module_id_from(payload),
            sub_material_id,
            point_id,
        )

    if result.status is CompletionStatus.ALREADY_COMPLETED:
        code, message = "POINT_ALREADY_COMPLETED", "Point already completed"
    else:
        code, message = "POINT_COMPLETED", "Point completed successfully"
    return Envelope(
        code=code,
        message=message,
        data=PointCompletionOut(
            status=result.status,
            progress=PointProgressOut.from_model(result.progress),
            rollups=[RollupOut.from_model(r) for r in result.rollups],
        ),
    )


@router.post(
    "/sub-materials/{sub_material_id}/complete",
    response_model=Envelope[SubMaterialCompletionOut],
)
async def post_sub_material_complete(
    sub_material_id: str,
    principal: CurrentUser,
    store: StoreDep,
    payload: Annotated[CompletionIn | None, Body()] = None,
) -> Envelope[SubMaterialCompletionOut]:
    with operation_boundary("complete_sub_material"):
        result = await complete_sub_material(
            store, principal.user_id, _module_id_from(payload), sub_material_id
        )

    return Envelope(
        code="SUB_MATERIAL_COMPLETED",
        message="Sub-material completed successfully",
        data=SubMaterialCompletionOut(
            progress=SubMaterialProgressOut.from_model(result.progress),
            rollups=[RollupOut.from_model(r) for r in result.rollups],
        ),
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/modules/{module_id}", response_model=Envelope[ModuleDetailOut])
async def get_module(
    module_id: str,
    principal: CurrentUser,
    store: StoreDep,
) -> Envelope[ModuleDetailOut]:
    with operation_boundary("get_module_progress"):
        bundle = await get_module_progress(
            store, principal.user_id, parse_module_id(module_id)
        )

    module = bundle.module_progress
    return Envelope(
        code="MODULE_PROGRESS_SUCCESS",
        message="Module progress retrieved",
        data=ModuleDetailOut(
            module_id=bundle.module_id,
            progress_percentage=module.progress_percentage if module else 0.0,
            is_completed=module.is_completed if module else False,
            completed_at=module.completed_at if module else None,
            module_progress=ModuleProgressOut.from_model(module) if module else None,
            sub_materials=[SubMaterialProgressOut.from_model(s) for s in bundle.sub_materials],
            points=[PointProgressOut.from_model(p) for p in bundle.points],
        ),
    )


@router.get("/modules", response_model=Envelope[ModuleListOut])
async def get_modules(
    response: Response,
    principal: CurrentUser,
    store: StoreDep,
) -> Envelope[ModuleListOut]:
    with operation_boundary("list_user_modules_progress"):
        modules = await list_user_modules_progress(store, principal.user_id)

    response.headers.update(_NO_CACHE_HEADERS)
    return Envelope(
        code="USER_MODULES_PROGRESS_SUCCESS",
        message="User module progress retrieved",
        data=ModuleListOut(modules=[ModuleProgressOut.from_model(m) for m in modules]),
    )


@router.get("/materials/{sub_material_id}/access", response_model=Envelope[AccessOut])
async def get_access(
    sub_material_id: str,
    principal: CurrentUser,
    store: StoreDep,
    catalog: CatalogDep,
) -> Envelope[AccessOut]:
    with operation_boundary("can_access_sub_material"):
        decision = await can_access_sub_material(
            store, catalog, principal.user_id, sub_material_id
        )

    return Envelope(
        code="SUB_MATERIAL_ACCESS_CHECK",
        message="Access check completed",
        data=AccessOut(
            sub_material_id=decision.sub_material_id,
            can_access=decision.can_access,
            reason=decision.reason,
        ),
    )


@router.get("/sub-materials/{sub_material_id}", response_model=Envelope[SubMaterialDetailOut])
async def get_sub_material(
    sub_material_id: str,
    principal: CurrentUser,
    store: StoreDep,
    catalog: CatalogDep,
) -> Envelope[SubMaterialDetailOut]:
    with operation_boundary("get_sub_material_progress"):
        detail = await get_sub_material_progress(store, catalog, principal, sub_material_id)

    return Envelope(
        code="SUB_MATERIAL_PROGRESS_SUCCESS",
        message="Sub-material progress retrieved",
        data=SubMaterialDetailOut.from_model(detail),
    )
