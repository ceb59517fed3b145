"""Prometheus metrics for the reconciliation loop and its work queue.

All collectors are registered on the default prometheus_client registry,
which the metrics endpoint exposes.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

reconcile_total = Counter(
    "nli_reconcile_total",
    "Reconciliation attempts by outcome.",
    ["result"],
)

reconcile_errors_total = Counter(
    "nli_reconcile_errors_total",
    "Failed reconciliation attempts by error class.",
    ["error"],
)

reconcile_duration_seconds = Histogram(
    "nli_reconcile_duration_seconds",
    "Wall time of a single reconciliation attempt.",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

labels_applied_total = Counter(
    "nli_labels_applied_total",
    "Pod labels written from node labels.",
)

workqueue_depth = Gauge(
    "nli_workqueue_depth",
    "Keys waiting in the work queue.",
)

workqueue_adds_total = Counter(
    "nli_workqueue_adds_total",
    "Keys added to the work queue.",
)

workqueue_retries_total = Counter(
    "nli_workqueue_retries_total",
    "Rate-limited requeues.",
)

watch_restarts_total = Counter(
    "nli_watch_restarts_total",
    "Watch stream restarts by resource kind.",
    ["kind"],
)

leader_status = Gauge(
    "nli_leader_election_master_status",
    "1 while this replica holds the leader lease.",
)
