"""Prometheus scrape endpoint (text exposition format, not JSON).

Besides the HTTP metrics it exposes the progress engine counters, e.g.

  progress_completions_total{entity="point",result="completed"} 12.0
  progress_rollup_failures_total{stage="recalculate_module"} 1.0
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
