from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    uuid.UUID(resp.headers["x-request-id"])


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-ID": "dashboard-reload-7"})
    assert resp.headers.get("x-request-id") == "dashboard-reload-7"


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get("/v1/progress/modules")
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None


def test_access_log_carries_request_context(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="app.middleware.request_context"):
        client.get("/health", headers={"X-Request-ID": "req-42"})

    [record] = [
        r for r in caplog.records if r.name == "app.middleware.request_context"
    ]
    assert record.request_id == "req-42"
    assert record.path == "/health"
    assert record.status_code == 200
