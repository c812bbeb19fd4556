"""Read-through catalog cache tests.

Cache hit/miss counters are asserted as deltas: prometheus counters live
in the global registry and are never reset between tests.
"""

from __future__ import annotations

import asyncio

from prometheus_client import REGISTRY
from redis.exceptions import ConnectionError as RedisConnectionError

from app.models.catalog import CatalogSubMaterial
from app.repos.catalog_repo import InMemoryCatalogRepo
from app.services.cache import InMemoryCacheService
from app.services.catalog_cache import CachedCatalogRepo


class _CountingCatalog(InMemoryCatalogRepo):
    def __init__(self) -> None:
        super().__init__()
        self.lookups = 0
        self.counts = 0

    async def get_sub_material(self, sub_material_id: str):
        self.lookups += 1
        return await super().get_sub_material(sub_material_id)

    async def count_points(self, sub_material_id: str) -> int:
        self.counts += 1
        return await super().count_points(sub_material_id)


class _BrokenCache:
    async def get(self, key: str) -> str | None:
        raise RedisConnectionError("down")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        raise RedisConnectionError("down")

    async def delete(self, key: str) -> None:
        raise RedisConnectionError("down")


def _cache_ops(operation: str) -> float:
    value = REGISTRY.get_sample_value(
        "catalog_cache_operations_total", {"operation": operation}
    )
    return value or 0.0


def _catalog() -> _CountingCatalog:
    inner = _CountingCatalog()
    inner.add(CatalogSubMaterial(id="sm-a", module_id=1, order_index=0, title="Intro"), points=4)
    return inner


def test_second_lookup_is_served_from_cache() -> None:
    inner = _catalog()
    repo = CachedCatalogRepo(inner, InMemoryCacheService(), ttl_seconds=60)
    hits_before = _cache_ops("hit")

    first = asyncio.run(repo.get_sub_material("sm-a"))
    second = asyncio.run(repo.get_sub_material("sm-a"))

    assert first == second
    assert second is not None and second.title == "Intro"
    assert inner.lookups == 1
    assert _cache_ops("hit") - hits_before == 1


def test_point_counts_are_cached() -> None:
    inner = _catalog()
    repo = CachedCatalogRepo(inner, InMemoryCacheService(), ttl_seconds=60)

    assert asyncio.run(repo.count_points("sm-a")) == 4
    assert asyncio.run(repo.count_points("sm-a")) == 4
    assert inner.counts == 1


def test_misses_are_not_cached() -> None:
    inner = _catalog()
    cache = InMemoryCacheService()
    repo = CachedCatalogRepo(inner, cache, ttl_seconds=60)

    assert asyncio.run(repo.get_sub_material("later")) is None
    inner.add(CatalogSubMaterial(id="later", module_id=1, order_index=1))

    assert asyncio.run(repo.get_sub_material("later")) is not None
    assert inner.lookups == 2


def test_sibling_listing_bypasses_cache() -> None:
    inner = _catalog()
    cache = InMemoryCacheService()
    repo = CachedCatalogRepo(inner, cache, ttl_seconds=60)

    rows = asyncio.run(repo.list_published_before(1, 5))

    assert [r.id for r in rows] == ["sm-a"]
    assert cache._store == {}


def test_broken_cache_degrades_to_catalog_reads() -> None:
    inner = _catalog()
    repo = CachedCatalogRepo(inner, _BrokenCache(), ttl_seconds=60)

    assert asyncio.run(repo.get_sub_material("sm-a")) is not None
    assert asyncio.run(repo.count_points("sm-a")) == 4
    assert inner.lookups == 1
