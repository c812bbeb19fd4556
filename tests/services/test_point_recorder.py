from __future__ import annotations

import asyncio

import pytest
from prometheus_client import REGISTRY

from app.core.errors import PersistenceError, ProgressValidationError
from app.models.progress import CompletionStatus
from app.repos.progress_store import InMemoryProgressStore
from app.services.point_recorder import complete_point
from app.services.write_policy import ProgressStoreHandle
from tests.conftest import FailingStore

USER = "learner-1"


def _sample(name: str, labels: dict) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_first_completion_creates_point_and_rollups(
    handle: ProgressStoreHandle, memory_store: InMemoryProgressStore
) -> None:
    result = asyncio.run(complete_point(handle, USER, 3, "sm-a", "p-1"))

    assert result.status is CompletionStatus.COMPLETED
    assert result.progress.is_completed is True
    assert result.progress.completed_at is not None
    assert [r.stage for r in result.rollups] == ["touch_sub_material", "recalculate_module"]
    assert all(r.ok for r in result.rollups)

    sub_materials = asyncio.run(memory_store.list_sub_materials(USER, 3))
    assert len(sub_materials) == 1
    assert sub_materials[0].is_completed is False
    assert sub_materials[0].progress_percentage == 0.0

    module = asyncio.run(memory_store.get_module(USER, 3))
    assert module is not None
    assert module.progress_percentage == 0.0


def test_repeat_completion_reports_already_completed(
    handle: ProgressStoreHandle, memory_store: InMemoryProgressStore
) -> None:
    first = asyncio.run(complete_point(handle, USER, 3, "sm-a", "p-1"))
    second = asyncio.run(complete_point(handle, USER, 3, "sm-a", "p-1"))

    assert second.status is CompletionStatus.ALREADY_COMPLETED
    assert second.progress == first.progress
    assert second.rollups == ()
    assert len(asyncio.run(memory_store.list_points(USER, 3))) == 1


def test_already_completed_point_triggers_no_rollup(
    handle: ProgressStoreHandle, memory_store: InMemoryProgressStore
) -> None:
    asyncio.run(complete_point(handle, USER, 3, "sm-a", "p-1"))
    failing = FailingStore(memory_store, set())

    asyncio.run(complete_point(ProgressStoreHandle(scoped=failing), USER, 3, "sm-a", "p-1"))

    assert failing.calls == ["get_point"]


def test_module_id_accepts_numeric_string(handle: ProgressStoreHandle) -> None:
    result = asyncio.run(complete_point(handle, USER, " 12 ", "sm-a", "p-1"))
    assert result.progress.module_id == 12


@pytest.mark.parametrize("module_id", [None, ""])
def test_missing_module_id_rejected(
    memory_store: InMemoryProgressStore, module_id: object
) -> None:
    failing = FailingStore(memory_store, set())

    with pytest.raises(ProgressValidationError) as exc_info:
        asyncio.run(
            complete_point(ProgressStoreHandle(scoped=failing), USER, module_id, "sm-a", "p-1")
        )

    assert exc_info.value.code == "MISSING_MODULE_ID"
    assert failing.calls == []


@pytest.mark.parametrize("module_id", ["abc", "1.5", 2.0, True])
def test_invalid_module_id_rejected(handle: ProgressStoreHandle, module_id: object) -> None:
    with pytest.raises(ProgressValidationError) as exc_info:
        asyncio.run(complete_point(handle, USER, module_id, "sm-a", "p-1"))

    assert exc_info.value.code == "INVALID_MODULE_ID"
    assert exc_info.value.status_code == 400


def test_point_write_failure_is_fatal(memory_store: InMemoryProgressStore) -> None:
    failing = FailingStore(memory_store, {"upsert_point_completed"})

    with pytest.raises(PersistenceError) as exc_info:
        asyncio.run(complete_point(ProgressStoreHandle(scoped=failing), USER, 3, "sm-a", "p-1"))

    assert exc_info.value.code == "POINT_PROGRESS_ERROR"
    assert exc_info.value.status_code == 500
    assert "touch_sub_material" not in failing.calls


def test_point_lookup_failure_is_fatal(memory_store: InMemoryProgressStore) -> None:
    failing = FailingStore(memory_store, {"get_point"})

    with pytest.raises(PersistenceError) as exc_info:
        asyncio.run(complete_point(ProgressStoreHandle(scoped=failing), USER, 3, "sm-a", "p-1"))

    assert exc_info.value.code == "POINT_PROGRESS_ERROR"


def test_rollup_failures_do_not_fail_completion(
    memory_store: InMemoryProgressStore,
) -> None:
    failing = FailingStore(memory_store, {"touch_sub_material", "upsert_module"})
    before = _sample("progress_rollup_failures_total", {"stage": "recalculate_module"})

    result = asyncio.run(
        complete_point(ProgressStoreHandle(scoped=failing), USER, 3, "sm-a", "p-1")
    )

    assert result.status is CompletionStatus.COMPLETED
    assert [r.ok for r in result.rollups] == [False, False]
    assert result.rollups[0].error == "touch_sub_material failed"
    after = _sample("progress_rollup_failures_total", {"stage": "recalculate_module"})
    assert after - before == 1
    # The primary write landed
    assert asyncio.run(memory_store.get_point(USER, "p-1")) is not None


def test_completion_counter_increments(handle: ProgressStoreHandle) -> None:
    labels = {"entity": "point", "result": "completed"}
    before = _sample("progress_completions_total", labels)
    asyncio.run(complete_point(handle, USER, 3, "sm-a", "p-1"))
    assert _sample("progress_completions_total", labels) - before == 1


def test_point_completion_never_clobbers_finalized_sub_material(
    handle: ProgressStoreHandle, memory_store: InMemoryProgressStore
) -> None:
    from app.services.sub_material_rollup import complete_sub_material

    asyncio.run(complete_sub_material(handle, USER, 3, "sm-a"))
    asyncio.run(complete_point(handle, USER, 3, "sm-a", "p-late"))

    [row] = asyncio.run(memory_store.list_sub_materials(USER, 3))
    assert row.is_completed is True
    assert row.progress_percentage == 100.0
