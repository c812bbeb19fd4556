"""Read-through cache in front of the content catalog.

Catalog rows change only when the content client republishes, so
sub-material lookups and point counts are cached for CATALOG_CACHE_TTL
seconds.  Misses (unknown ids) are not cached: a sub-material published
after a 404 becomes visible on the next request.

Sibling listings for the access gate go straight to the catalog; they
depend on publication flags across a whole module.

A failing Redis degrades to direct catalog reads.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict

from redis.exceptions import RedisError

from app.core.metrics import CATALOG_CACHE_OPERATIONS
from app.models.catalog import CatalogSubMaterial
from app.repos.catalog_repo import CatalogRepo
from app.services.cache import CacheService

logger = logging.getLogger(__name__)


class CachedCatalogRepo:
    """Satisfies CatalogRepo by wrapping another CatalogRepo."""

    def __init__(self, inner: CatalogRepo, cache: CacheService, ttl_seconds: int) -> None:
        self._inner = inner
        self._cache = cache
        self._ttl = ttl_seconds

    async def _get(self, key: str) -> str | None:
        try:
            cached = await self._cache.get(key)
        except RedisError:
            logger.warning("Catalog cache read failed key=%s", key, exc_info=True)
            return None
        CATALOG_CACHE_OPERATIONS.labels(
            operation="miss" if cached is None else "hit"
        ).inc()
        return cached

    async def _set(self, key: str, value: str) -> None:
        try:
            await self._cache.set(key, value, self._ttl)
        except RedisError:
            logger.warning("Catalog cache write failed key=%s", key, exc_info=True)

    async def get_sub_material(self, sub_material_id: str) -> CatalogSubMaterial | None:
        key = f"catalog:sub_material:{sub_material_id}"
        cached = await self._get(key)
        if cached is not None:
            return CatalogSubMaterial(**json.loads(cached))

        sub_material = await self._inner.get_sub_material(sub_material_id)
        if sub_material is not None:
            await self._set(key, json.dumps(asdict(sub_material)))
        return sub_material

    async def list_published_before(
        self, module_id: int, order_index: int
    ) -> list[CatalogSubMaterial]:
        return await self._inner.list_published_before(module_id, order_index)

    async def count_points(self, sub_material_id: str) -> int:
        key = f"catalog:point_count:{sub_material_id}"
        cached = await self._get(key)
        if cached is not None:
            return int(cached)

        count = await self._inner.count_points(sub_material_id)
        await self._set(key, str(count))
        return count
