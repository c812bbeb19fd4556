"""HTTP tests for the progress endpoints (in-memory store and catalog)."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies import get_progress_store, progress_store
from app.core import errors
from app.main import app
from app.repos.progress_store import StoreErrorKind
from app.services.write_policy import ProgressStoreHandle
from tests.conftest import FailingStore, add_sub_material, auth, mint_token

BASE = "/v1/progress"


def _complete_point(client: TestClient, token: str, sm: str, point: str, body=None):
    return client.post(
        f"{BASE}/materials/{sm}/points/{point}/complete",
        json=body if body is not None else {"module_id": 1},
        headers=auth(token),
    )


def _complete_sub_material(client: TestClient, token: str, sm: str, module_id=1):
    return client.post(
        f"{BASE}/sub-materials/{sm}/complete",
        json={"module_id": module_id},
        headers=auth(token),
    )


@pytest.fixture
def dev_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Expose raw store errors in `details` regardless of APP_ENV."""
    monkeypatch.setattr(errors, "SETTINGS", replace(errors.SETTINGS, app_env="dev"))


@pytest.fixture
def failing_store():
    """Route the progress endpoints through a FailingStore."""
    store = FailingStore(progress_store, set())

    async def _override() -> AsyncGenerator[ProgressStoreHandle, None]:
        yield ProgressStoreHandle(scoped=store)

    app.dependency_overrides[get_progress_store] = _override
    yield store
    app.dependency_overrides.pop(get_progress_store, None)


# ---- 401: unauthenticated ----


@pytest.mark.parametrize(
    ("method", "path"),
    [
        ("post", f"{BASE}/materials/sm-a/points/p-1/complete"),
        ("post", f"{BASE}/sub-materials/sm-a/complete"),
        ("get", f"{BASE}/modules/1"),
        ("get", f"{BASE}/modules"),
        ("get", f"{BASE}/materials/sm-a/access"),
        ("get", f"{BASE}/sub-materials/sm-a"),
    ],
)
def test_endpoints_require_token(client: TestClient, method: str, path: str) -> None:
    resp = getattr(client, method)(path)
    assert resp.status_code == 401
    assert resp.json()["code"] == "UNAUTHORIZED"


def test_garbage_token_rejected(client: TestClient) -> None:
    resp = client.get(f"{BASE}/modules", headers=auth("not-a-jwt"))
    assert resp.status_code == 401
    assert resp.json() == {"code": "UNAUTHORIZED", "message": "Invalid token"}


# ---- point completion ----


def test_point_completion(client: TestClient, token: str) -> None:
    resp = _complete_point(client, token, "sm-a", "p-1")

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == "POINT_COMPLETED"
    assert body["data"]["status"] == "completed"
    progress = body["data"]["progress"]
    assert progress["user_id"] == "test-user"
    assert progress["module_id"] == 1
    assert progress["point_id"] == "p-1"
    assert progress["is_completed"] is True
    assert progress["completed_at"] is not None


def test_point_completion_is_idempotent(client: TestClient, token: str) -> None:
    first = _complete_point(client, token, "sm-a", "p-1").json()
    second = _complete_point(client, token, "sm-a", "p-1").json()

    assert second["code"] == "POINT_ALREADY_COMPLETED"
    assert second["data"]["status"] == "already_completed"
    assert second["data"]["progress"]["id"] == first["data"]["progress"]["id"]
    assert second["data"]["progress"]["completed_at"] == first["data"]["progress"]["completed_at"]


def test_point_completion_accepts_string_module_id(client: TestClient, token: str) -> None:
    resp = _complete_point(client, token, "sm-a", "p-1", body={"module_id": "7"})
    assert resp.status_code == 200
    assert resp.json()["data"]["progress"]["module_id"] == 7


def test_point_completion_without_body(client: TestClient, token: str) -> None:
    resp = client.post(
        f"{BASE}/materials/sm-a/points/p-1/complete", headers=auth(token)
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "MISSING_MODULE_ID"


def test_point_completion_without_module_id(client: TestClient, token: str) -> None:
    resp = _complete_point(client, token, "sm-a", "p-1", body={})
    assert resp.status_code == 400
    assert resp.json() == {
        "code": "MISSING_MODULE_ID",
        "message": "module_id is required in request body",
    }


def test_point_completion_with_non_numeric_module_id(client: TestClient, token: str) -> None:
    resp = _complete_point(client, token, "sm-a", "p-1", body={"module_id": "intro"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_MODULE_ID"


def test_point_completion_with_oversized_module_id(client: TestClient, token: str) -> None:
    resp = _complete_point(client, token, "sm-a", "p-1", body={"module_id": 2**31})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_MODULE_ID"


def test_malformed_body_is_validation_error(client: TestClient, token: str) -> None:
    resp = _complete_point(client, token, "sm-a", "p-1", body=[1, 2])
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert isinstance(body["details"], list)


def test_point_store_failure_returns_500(
    client: TestClient, token: str, failing_store: FailingStore, dev_env: None
) -> None:
    failing_store.fail.add("upsert_point_completed")

    resp = _complete_point(client, token, "sm-a", "p-1")

    assert resp.status_code == 500
    body = resp.json()
    assert body["code"] == "POINT_PROGRESS_ERROR"
    assert body["details"] == {"details": "upsert_point_completed failed"}


def test_rollup_failure_still_returns_success(
    client: TestClient, token: str, failing_store: FailingStore
) -> None:
    failing_store.fail.update({"touch_sub_material", "upsert_module"})

    resp = _complete_point(client, token, "sm-a", "p-1")

    assert resp.status_code == 200
    rollups = resp.json()["data"]["rollups"]
    assert rollups == [
        {"stage": "touch_sub_material", "ok": False},
        {"stage": "recalculate_module", "ok": False},
    ]


def test_unexpected_error_becomes_internal_error(
    client: TestClient, token: str, failing_store: FailingStore, dev_env: None
) -> None:
    async def _boom(*args, **kwargs):
        raise RuntimeError("kaboom")

    failing_store.get_point = _boom  # type: ignore[method-assign]

    resp = _complete_point(client, token, "sm-a", "p-1")

    assert resp.status_code == 500
    assert resp.json() == {
        "code": "INTERNAL_ERROR",
        "message": "Internal server error",
        "details": {"details": "kaboom"},
    }


# ---- sub-material completion ----


def test_sub_material_completion(client: TestClient, token: str) -> None:
    resp = _complete_sub_material(client, token, "sm-a")

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == "SUB_MATERIAL_COMPLETED"
    assert body["data"]["progress"]["is_completed"] is True
    assert body["data"]["progress"]["progress_percentage"] == 100.0


def test_sub_material_completion_requires_module_id(client: TestClient, token: str) -> None:
    resp = client.post(
        f"{BASE}/sub-materials/sm-a/complete", json={}, headers=auth(token)
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "MISSING_MODULE_ID"


def test_sub_material_store_failure_returns_500(
    client: TestClient, token: str, failing_store: FailingStore
) -> None:
    failing_store.fail.add("finalize_sub_material")
    failing_store.kind = StoreErrorKind.UNKNOWN

    resp = _complete_sub_material(client, token, "sm-a")

    assert resp.status_code == 500
    assert resp.json()["code"] == "PROGRESS_UPDATE_ERROR"


# ---- module reads ----


def test_module_progress_for_new_module_has_zero_shape(
    client: TestClient, token: str
) -> None:
    resp = client.get(f"{BASE}/modules/42", headers=auth(token))

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == "MODULE_PROGRESS_SUCCESS"
    assert body["data"] == {
        "module_id": 42,
        "progress_percentage": 0.0,
        "is_completed": False,
        "completed_at": None,
        "module_progress": None,
        "sub_materials": [],
        "points": [],
    }


def test_module_progress_after_completions(client: TestClient, token: str) -> None:
    _complete_point(client, token, "sm-a", "p-1")
    _complete_sub_material(client, token, "sm-a")
    _complete_point(client, token, "sm-b", "p-2")

    data = client.get(f"{BASE}/modules/1", headers=auth(token)).json()["data"]

    assert data["progress_percentage"] == 50.0
    assert data["is_completed"] is False
    assert [s["sub_material_id"] for s in data["sub_materials"]] == ["sm-a", "sm-b"]
    assert [p["point_id"] for p in data["points"]] == ["p-1", "p-2"]


def test_module_progress_rejects_non_numeric_id(client: TestClient, token: str) -> None:
    resp = client.get(f"{BASE}/modules/intro", headers=auth(token))
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_MODULE_ID"


def test_modules_list_is_not_cacheable(client: TestClient, token: str) -> None:
    _complete_sub_material(client, token, "sm-a")

    resp = client.get(f"{BASE}/modules", headers=auth(token))

    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    assert resp.headers["pragma"] == "no-cache"
    assert resp.headers["expires"] == "0"
    body = resp.json()
    assert body["code"] == "USER_MODULES_PROGRESS_SUCCESS"
    [module] = body["data"]["modules"]
    assert module["module_id"] == 1
    assert module["is_completed"] is True


def test_modules_list_is_per_user(client: TestClient, token: str) -> None:
    _complete_sub_material(client, token, "sm-a")
    other = mint_token(username="other-user")

    resp = client.get(f"{BASE}/modules", headers=auth(other))

    assert resp.json()["data"]["modules"] == []


def test_modules_list_store_failure_returns_500(
    client: TestClient, token: str, failing_store: FailingStore
) -> None:
    failing_store.fail.add("list_modules")

    resp = client.get(f"{BASE}/modules", headers=auth(token))

    assert resp.status_code == 500
    assert resp.json()["code"] == "PROGRESS_FETCH_ERROR"


# ---- access ----


def test_access_check(client: TestClient, token: str) -> None:
    add_sub_material("intro", 1, 0)
    add_sub_material("basics", 1, 1)

    denied = client.get(f"{BASE}/materials/basics/access", headers=auth(token)).json()
    assert denied["code"] == "SUB_MATERIAL_ACCESS_CHECK"
    assert denied["data"] == {
        "sub_material_id": "basics",
        "can_access": False,
        "reason": "Complete 1 previous sub-material first",
    }

    _complete_sub_material(client, token, "intro")
    granted = client.get(f"{BASE}/materials/basics/access", headers=auth(token)).json()
    assert granted["data"]["can_access"] is True
    assert granted["data"]["reason"] == ""


def test_access_check_unknown_sub_material(client: TestClient, token: str) -> None:
    resp = client.get(f"{BASE}/materials/ghost/access", headers=auth(token))
    assert resp.status_code == 404
    assert resp.json()["code"] == "SUB_MATERIAL_NOT_FOUND"


# ---- sub-material detail ----


def test_sub_material_detail_created_on_first_read(client: TestClient, token: str) -> None:
    add_sub_material("intro", 1, 0, points=3)

    resp = client.get(f"{BASE}/sub-materials/intro", headers=auth(token))

    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == "SUB_MATERIAL_PROGRESS_SUCCESS"
    assert body["data"]["progress_percent"] == 25
    assert body["data"]["is_unlocked"] is True
    assert not body["data"]["id"].startswith("temp_")


def test_sub_material_detail_transient_id(
    client: TestClient, token: str, failing_store: FailingStore
) -> None:
    add_sub_material("intro", 1, 0)
    failing_store.fail.add("insert_detail")

    resp = client.get(f"{BASE}/sub-materials/intro", headers=auth(token))

    assert resp.status_code == 200
    assert resp.json()["data"]["id"] == "temp_test-user_intro"


def test_unpublished_sub_material_detail(
    client: TestClient, token: str, admin_token: str
) -> None:
    add_sub_material("draft", 1, 0, published=False)

    learner = client.get(f"{BASE}/sub-materials/draft", headers=auth(token))
    assert learner.status_code == 403
    assert learner.json()["code"] == "SUB_MATERIAL_NOT_PUBLISHED"

    admin = client.get(f"{BASE}/sub-materials/draft", headers=auth(admin_token))
    assert admin.status_code == 200


def test_unknown_sub_material_detail(client: TestClient, token: str) -> None:
    resp = client.get(f"{BASE}/sub-materials/ghost", headers=auth(token))
    assert resp.status_code == 404
    assert resp.json()["code"] == "SUB_MATERIAL_NOT_FOUND"
