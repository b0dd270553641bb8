"""Prometheus metric inventory.

Every metric the service exports is declared here; the modules that own
the behaviour import and increment them.  Counters only go up, so tests
assert on deltas (see tests/middleware/test_metrics.py).
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
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
    # Issuance requests include two pinning round-trips, hence the long tail.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Certificate lifecycle metrics
# ---------------------------------------------------------------------------

REQUEST_TRANSITIONS = Counter(
    "certificate_request_transitions_total",
    "Certificate request status changes by resulting status",
    ["status"],  # pending (creation), accepted, rejected, issued
)

CONTENT_UPLOADS = Counter(
    "content_uploads_total",
    "Content store uploads by document kind and result",
    ["kind", "result"],  # kind: original|final, result: ok|error
)

ISSUANCE_OUTCOMES = Counter(
    "certificate_issuance_total",
    "Issuance orchestrations by outcome and the step that decided it",
    ["outcome", "step"],  # outcome: issued|failed|partial
)
