"""Demo: walk a learner through one module using FastAPI TestClient.

Runs against the in-memory store and catalog (leave DATABASE_URL unset).

Run with:
    python scripts/demo_progress_flow.py
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from app.api.dependencies import catalog_repo
from app.main import app
from app.models.catalog import CatalogSubMaterial
from app.services import token_service

MODULE_ID = 1
SUB_MATERIALS = [("intro", 3), ("basics", 2), ("advanced", 4)]


def main() -> None:
    client = TestClient(app)

    # ── Seed catalog ────────────────────────────────────────────────
    for index, (sm_id, points) in enumerate(SUB_MATERIALS):
        catalog_repo.add(
            CatalogSubMaterial(
                id=sm_id, module_id=MODULE_ID, order_index=index, title=sm_id.title()
            ),
            points=points,
        )

    token = token_service.create_access_token(sub="demo-learner", email="demo@example.com")
    headers = {"Authorization": f"Bearer {token}"}
    body = {"module_id": MODULE_ID}

    # ── Step 1: basics is locked until intro is done ────────────────
    r = client.get("/v1/progress/materials/basics/access", headers=headers)
    data = r.json()["data"]
    print(f"1. access basics           -> can_access={data['can_access']}  ({data['reason']})")

    # ── Step 2: open intro (creates the detailed record) ────────────
    r = client.get("/v1/progress/sub-materials/intro", headers=headers)
    print(f"2. open intro              -> seed {r.json()['data']['progress_percent']}%")

    # ── Step 3: complete intro's points ─────────────────────────────
    for n in range(1, 4):
        r = client.post(
            f"/v1/progress/materials/intro/points/intro-{n}/complete",
            json=body,
            headers=headers,
        )
        print(f"3. complete intro-{n}        -> {r.json()['code']}")

    r = client.post(
        "/v1/progress/materials/intro/points/intro-1/complete", json=body, headers=headers
    )
    print(f"   repeat intro-1          -> {r.json()['code']}")

    # ── Step 4: finalize intro ──────────────────────────────────────
    r = client.post("/v1/progress/sub-materials/intro/complete", json=body, headers=headers)
    print(f"4. finalize intro          -> {r.json()['code']}")

    # ── Step 5: basics is now open; start it ────────────────────────
    r = client.get("/v1/progress/materials/basics/access", headers=headers)
    print(f"5. access basics           -> can_access={r.json()['data']['can_access']}")
    client.post(
        "/v1/progress/materials/basics/points/basics-1/complete", json=body, headers=headers
    )

    # ── Step 6: module rollups ──────────────────────────────────────
    r = client.get(f"/v1/progress/modules/{MODULE_ID}", headers=headers)
    data = r.json()["data"]
    print(
        f"6. module {MODULE_ID}                -> {data['progress_percentage']}% "
        f"completed={data['is_completed']}"
    )

    r = client.get("/v1/progress/modules", headers=headers)
    for module in r.json()["data"]["modules"]:
        print(f"   dashboard module {module['module_id']}     -> {module['progress_percentage']}%")


if __name__ == "__main__":
    main()
