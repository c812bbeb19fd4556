from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import catalog_repo, progress_store
from app.main import app
from app.models.catalog import CatalogSubMaterial
from app.repos.progress_store import InMemoryProgressStore, StoreError, StoreErrorKind
from app.services import token_service
from app.services.cache import cache_service
from app.services.write_policy import ProgressStoreHandle

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_progress_store() -> None:
    progress_store.clear()


@pytest.fixture(autouse=True)
def reset_catalog() -> None:
    catalog_repo.clear()


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear the catalog cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = "test-user",
    roles: list[str] | None = None,
    email: str | None = None,
) -> str:
    """Create a valid ES256 JWT signed with the dev key."""
    return token_service.create_access_token(sub=username, roles=roles, email=email)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token() -> str:
    return mint_token()


@pytest.fixture
def admin_token() -> str:
    return mint_token(username="test-admin", roles=["admin"])


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


class FailingStore:
    """Wraps an InMemoryProgressStore and raises StoreError from the named
    methods.  Everything else is delegated."""

    def __init__(
        self,
        inner: InMemoryProgressStore,
        fail: set[str],
        kind: StoreErrorKind = StoreErrorKind.UNAVAILABLE,
    ) -> None:
        self._inner = inner
        self.fail = set(fail)
        self.kind = kind
        self.calls: list[str] = []

    def __getattr__(self, name: str):
        attr = getattr(self._inner, name)
        if not callable(attr):
            return attr

        async def _call(*args, **kwargs):
            self.calls.append(name)
            if name in self.fail:
                raise StoreError(self.kind, f"{name} failed")
            return await attr(*args, **kwargs)

        return _call


@pytest.fixture
def memory_store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def handle(memory_store: InMemoryProgressStore) -> ProgressStoreHandle:
    return ProgressStoreHandle(scoped=memory_store)


def add_sub_material(
    sub_material_id: str,
    module_id: int,
    order_index: int,
    *,
    published: bool = True,
    points: int = 0,
) -> CatalogSubMaterial:
    """Register a sub-material in the shared in-memory catalog."""
    sm = CatalogSubMaterial(
        id=sub_material_id,
        module_id=module_id,
        order_index=order_index,
        published=published,
        title=sub_material_id.replace("-", " ").title(),
    )
    catalog_repo.add(sm, points=points)
    return sm
