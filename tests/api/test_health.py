from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_reports_unconfigured_dependencies(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {
        "status": "ok",
        "checks": {"database": "not_configured", "redis": "not_configured"},
    }


def test_ready_without_database(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200
