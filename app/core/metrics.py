"""Prometheus metric inventory for progress-service.

Every metric the service exports is declared here; the modules that own
the behavior import and update them.  Counters only go up, so dashboards
read them through rate(); tests assert on before/after deltas.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    # The self-healing module list runs one recompute per module, so the
    # upper buckets matter more here than for single-row writes.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Progress engine
# ---------------------------------------------------------------------------

PROGRESS_COMPLETIONS = Counter(
    "progress_completions_total",
    "Completion requests by entity and outcome",
    ["entity", "result"],  # entity: point|sub_material, result: completed|already_completed
)

ROLLUP_FAILURES = Counter(
    "progress_rollup_failures_total",
    "Best-effort rollup steps that failed and were dropped",
    ["stage"],  # touch_sub_material|recalculate_module
)

MODULE_RECALCULATIONS = Counter(
    "module_recalculations_total",
    "Module aggregation passes by what triggered them",
    ["trigger"],  # point|sub_material|list_read
)

ELEVATED_WRITES = Counter(
    "store_elevated_writes_total",
    "Writes retried on the elevated store after a scoped-write denial",
    ["operation"],
)

CATALOG_CACHE_OPERATIONS = Counter(
    "catalog_cache_operations_total",
    "Catalog cache lookups by result",
    ["operation"],  # hit|miss
)
