from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.core.config import SETTINGS
from app.db import engine as db
from app.models.principal import Principal
from app.repos.catalog_repo import CatalogRepo, InMemoryCatalogRepo
from app.repos.pg_catalog_repo import PgCatalogRepo
from app.repos.pg_progress_store import PgProgressStore
from app.repos.progress_store import InMemoryProgressStore
from app.services import token_service
from app.services.cache import cache_service
from app.services.catalog_cache import CachedCatalogRepo
from app.services.write_policy import ProgressStoreHandle

logger = logging.getLogger(__name__)

# Token issuance belongs to the identity service; the URL is informational.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")

# In-memory fallbacks when DATABASE_URL is not configured.
progress_store = InMemoryProgressStore()
catalog_repo = InMemoryCatalogRepo()


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal."""
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=claims["sub"],
        roles=frozenset(claims.get("roles", [])),
        email=claims.get("email"),
    )
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        sorted(principal.roles),
    )
    return principal


async def get_progress_store(
    principal: Annotated[Principal, Depends(require_user)],
) -> AsyncGenerator[ProgressStoreHandle, None]:
    """Yield the caller's store handle for the duration of the request.

    With a database the scoped session is stamped with the caller's
    user id; the elevated session (if configured) is opened alongside it
    and only used by the write policy, which keeps using it for the rest of
    the request once a write has fallen back to it.
    """
    if db.async_session_factory is None:
        yield ProgressStoreHandle(scoped=progress_store)
        return

    async with db.session_scope(
        db.async_session_factory, user_id=principal.user_id
    ) as session:
        if db.elevated_session_factory is None:
            yield ProgressStoreHandle(scoped=PgProgressStore(session))
            return
        async with db.session_scope(db.elevated_session_factory) as elevated:
            yield ProgressStoreHandle(
                scoped=PgProgressStore(session),
                elevated=PgProgressStore(elevated),
            )


async def get_catalog_repo() -> AsyncGenerator[CatalogRepo, None]:
    """Yield the content catalog behind the read-through cache."""
    if db.async_session_factory is None:
        yield CachedCatalogRepo(catalog_repo, cache_service, SETTINGS.catalog_cache_ttl)
        return

    async with db.session_scope(db.async_session_factory) as session:
        yield CachedCatalogRepo(
            PgCatalogRepo(session), cache_service, SETTINGS.catalog_cache_ttl
        )


CurrentUser = Annotated[Principal, Depends(require_user)]
StoreDep = Annotated[ProgressStoreHandle, Depends(get_progress_store)]
CatalogDep = Annotated[CatalogRepo, Depends(get_catalog_repo)]
