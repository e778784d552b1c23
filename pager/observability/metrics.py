"""Prometheus collectors for the work queue, workers and informer.

All collectors are module-level and registered with the default registry.
Queue collectors carry a ``name`` label so several queues can coexist.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

workqueue_adds_total = Counter(
    "pager_workqueue_adds_total",
    "Keys added to the work queue (including dirty marks).",
    ["name"],
)

workqueue_depth = Gauge(
    "pager_workqueue_depth",
    "Keys currently waiting in the work queue.",
    ["name"],
)

workqueue_retries_total = Counter(
    "pager_workqueue_retries_total",
    "Keys re-added after a failure with backoff.",
    ["name"],
)

workqueue_drops_total = Counter(
    "pager_workqueue_drops_total",
    "Keys dropped after exceeding the retry limit.",
    ["name"],
)

reconcile_total = Counter(
    "pager_reconcile_total",
    "Reconcile attempts by result.",
    ["result"],
)

reconcile_duration_seconds = Histogram(
    "pager_reconcile_duration_seconds",
    "Duration of a single reconcile call.",
    buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0),
)

informer_events_total = Counter(
    "pager_informer_events_total",
    "Watch events applied to the local cache by type.",
    ["event"],
)

errors_total = Counter(
    "pager_errors_total",
    "Errors reported through the error sink by component.",
    ["component"],
)
