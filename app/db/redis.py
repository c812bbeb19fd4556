"""Redis connection management.

Mirrors engine.py: with REDIS_URL set, a shared async connection pool is
created at import time; without it ``redis_pool`` is None and the catalog
cache falls back to an in-process dict.  Redis holds nothing durable here,
only cached catalog lookups.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis; mirrors lifespan_db().

    An unreachable Redis at startup is logged, not fatal: the cache is an
    optimization and every lookup can still reach the catalog.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured, catalog cache is in-memory")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        logger.exception("Redis connection failed on startup")
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
