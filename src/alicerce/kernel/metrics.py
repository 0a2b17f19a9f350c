"""
Prometheus metrics collection for Alicerce.

Provides observability into demand transitions, notification fan-out and
audit health.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# Store Metrics
# ============================================================================

records_written_total = Counter(
    "alicerce_records_written_total",
    "Total number of store writes",
    ["collection", "operation"],  # operation: insert, update, delete
)

version_conflicts_total = Counter(
    "alicerce_version_conflicts_total",
    "Total number of optimistic locking version conflicts",
    ["collection"],
)

# ============================================================================
# Lifecycle Metrics
# ============================================================================

operation_duration_seconds = Histogram(
    "alicerce_operation_duration_seconds",
    "Duration of lifecycle engine operations in seconds",
    ["action"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

operations_processed_total = Counter(
    "alicerce_operations_processed_total",
    "Total number of lifecycle engine operations",
    ["action", "status"],  # status: success, failure
)

demand_transitions_total = Counter(
    "alicerce_demand_transitions_total",
    "Total number of demand status transitions",
    ["from_status", "to_status"],
)

demands_by_status = Gauge(
    "alicerce_demands_by_status",
    "Number of demands by status",
    ["status"],
)

value_adjudicated = Histogram(
    "alicerce_value_adjudicated",
    "Aggregate adjudicated value per homologation (BRL)",
    ["mode"],
    buckets=(1_000, 10_000, 50_000, 100_000, 500_000, 1_000_000, 5_000_000),
)

# ============================================================================
# Notification Metrics
# ============================================================================

notifications_total = Counter(
    "alicerce_notifications_total",
    "Total number of notification attempts",
    ["template", "outcome"],  # outcome: sent, failed, skipped
)

dispatch_duration_seconds = Histogram(
    "alicerce_dispatch_duration_seconds",
    "Duration of a notification fan-out in seconds",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

matched_suppliers = Histogram(
    "alicerce_matched_suppliers",
    "Number of eligible suppliers found when a demand is published",
    buckets=(0, 1, 2, 3, 5, 10, 20, 50, 100),
)

# ============================================================================
# Audit Metrics
# ============================================================================

audit_entries_total = Counter(
    "alicerce_audit_entries_total",
    "Total number of audit entries appended",
    ["action"],
)

audit_failures_total = Counter(
    "alicerce_audit_failures_total",
    "Total number of audit entries that could not be written",
    ["action"],
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_operation_duration(action: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to track lifecycle operation duration and outcome.

    Args:
        action: Audit action name of the operation

    Returns:
        Decorated function that tracks duration
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                operation_duration_seconds.labels(action=action).observe(
                    time.perf_counter() - start
                )
                operations_processed_total.labels(action=action, status=status).inc()

        return wrapper

    return decorator


def update_status_gauges(counts: dict[str, int]) -> None:
    """
    Set the demands-by-status gauge from a status -> count mapping.

    Args:
        counts: Wire status value -> number of demands
    """
    for status, count in counts.items():
        demands_by_status.labels(status=status).set(count)
