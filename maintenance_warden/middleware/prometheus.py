"""Prometheus metrics for the maintenance middleware.

Features:
- Per-request decision counts (maintenance page or bypass rule)
- Maintenance file reload outcomes
- Maintenance service errors and latency
"""

from prometheus_client import Counter, Histogram


# =============================================================================
# Custom Metrics
# =============================================================================

REQUESTS_TOTAL = Counter(
    "warden_requests_total",
    "Requests seen by the maintenance middleware",
    ["decision"],  # maintenance, disabled, favicon, path_prefix, header
)

FILE_RELOADS_TOTAL = Counter(
    "warden_file_reloads_total",
    "Maintenance file reload attempts",
    ["result"],  # reloaded, unchanged, failed
)

UPSTREAM_ERRORS_TOTAL = Counter(
    "warden_upstream_errors_total",
    "Failed round trips to the maintenance service",
)

UPSTREAM_DURATION = Histogram(
    "warden_upstream_duration_seconds",
    "Time until the maintenance service returned response headers",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10],
)


# =============================================================================
# Helper Functions
# =============================================================================


def record_decision(decision: str) -> None:
    """Record the dispatch decision for a request.

    Args:
        decision: "maintenance" or the name of the bypass rule that fired
    """
    REQUESTS_TOTAL.labels(decision=decision).inc()


def record_file_reload(result: str) -> None:
    """Record a maintenance file reload attempt.

    Args:
        result: "reloaded", "unchanged" or "failed"
    """
    FILE_RELOADS_TOTAL.labels(result=result).inc()


def record_upstream_error() -> None:
    UPSTREAM_ERRORS_TOTAL.inc()
