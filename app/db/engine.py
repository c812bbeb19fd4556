"""Async SQLAlchemy engines and session scopes.

When DATABASE_URL is configured, provides:
- the scoped engine (the application role, subject to row-level security)
- optionally an elevated engine (DATABASE_ELEVATED_URL) used only when a
  scoped write is denied
- ``session_scope`` for request-scoped sessions
- a lifespan hook for startup/shutdown

When DATABASE_URL is None all exports are None and the app falls back to
the in-memory progress store and catalog.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all table models."""


def _make_engine(url: str) -> AsyncEngine:
    return create_async_engine(
        url,
        echo=SETTINGS.is_dev,
        pool_size=5,
        max_overflow=10,
    )


# --- Engines and session factories (None when not configured) ---

engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None
elevated_engine: AsyncEngine | None = None
elevated_session_factory: async_sessionmaker[AsyncSession] | None = None

if SETTINGS.database_url:
    engine = _make_engine(SETTINGS.database_url)
    async_session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    if SETTINGS.database_elevated_url:
        elevated_engine = _make_engine(SETTINGS.database_elevated_url)
        elevated_session_factory = async_sessionmaker(
            elevated_engine, class_=AsyncSession, expire_on_commit=False
        )


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
    *,
    user_id: str | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session that commits on success and rolls back on exception.

    With ``user_id`` the transaction-local ``app.user_id`` setting is
    stamped so row-level-security policies can match rows to the caller.
    """
    async with factory() as session:
        try:
            if user_id is not None:
                await session.execute(
                    text("SELECT set_config('app.user_id', :uid, true)"),
                    {"uid": user_id},
                )
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an unscoped request session."""
    if async_session_factory is None:
        raise RuntimeError(
            "DATABASE_URL is not configured; cannot create database session"
        )
    async with session_scope(async_session_factory) as session:
        yield session


@asynccontextmanager
async def lifespan_db():
    """Startup/shutdown hook for the database engines."""
    if engine is None:
        logger.info("No DATABASE_URL configured, using in-memory progress store")
        yield
        return

    logger.info("Database engine created: %s", engine.url)
    if elevated_engine is not None:
        logger.info("Elevated write engine configured: %s", elevated_engine.url)
    yield
    await engine.dispose()
    if elevated_engine is not None:
        await elevated_engine.dispose()
    logger.info("Database engines disposed")
