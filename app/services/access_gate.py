"""Sequential unlock: a sub-material opens once every published sibling
before it in its module has been completed by the learner."""

from __future__ import annotations

import logging

from app.core.errors import NotFoundError
from app.models.progress import AccessDecision
from app.repos.catalog_repo import CatalogRepo
from app.services.write_policy import ProgressStoreHandle

logger = logging.getLogger(__name__)


async def can_access_sub_material(
    store: ProgressStoreHandle,
    catalog: CatalogRepo,
    user_id: str,
    sub_material_id: str,
) -> AccessDecision:
    sub_material = await catalog.get_sub_material(sub_material_id)
    if sub_material is None or not sub_material.published:
        raise NotFoundError("SUB_MATERIAL_NOT_FOUND", "Sub-material not found")

    predecessors = await catalog.list_published_before(
        sub_material.module_id, sub_material.order_index
    )
    if not predecessors:
        return AccessDecision(sub_material_id=sub_material_id, can_access=True)

    ids = [p.id for p in predecessors]
    done = await store.reader.completed_sub_material_ids(user_id, ids)
    remaining = sum(1 for i in ids if i not in done)
    if remaining == 0:
        return AccessDecision(sub_material_id=sub_material_id, can_access=True)

    logger.debug(
        "Access denied user=%s sub_material=%s remaining=%d",
        user_id,
        sub_material_id,
        remaining,
    )
    suffix = "s" if remaining != 1 else ""
    return AccessDecision(
        sub_material_id=sub_material_id,
        can_access=False,
        reason=f"Complete {remaining} previous sub-material{suffix} first",
    )
