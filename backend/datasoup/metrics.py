"""Prometheus metrics for sync runs and the dashboard."""
from __future__ import annotations

from prometheus_client import Counter, Histogram


FETCH_ATTEMPTS_TOTAL = Counter(
    "datasoup_fetch_attempts_total",
    "Resource download attempts by outcome",
    ["mode", "outcome"],
)

FETCH_LATENCY_SECONDS = Histogram(
    "datasoup_fetch_latency_seconds",
    "Resource download latency",
    ["mode"],
    buckets=(0.1, 0.5, 1, 2, 5, 10, 20, 40, 60, 120, 300),
)

RESOURCE_DECISIONS_TOTAL = Counter(
    "datasoup_resource_decisions_total",
    "Resources classified per run",
    ["mode", "state"],
)

RESOURCE_FAILURES_TOTAL = Counter(
    "datasoup_resource_failures_total",
    "Resources skipped after a resource-local error",
    ["mode", "error_class"],
)

DIFF_LINES_OBS = Histogram(
    "datasoup_diff_lines",
    "Changed lines per updated resource",
    buckets=(0, 1, 5, 10, 50, 100, 500, 1000, 5000, 10000),
)

NOTIFICATIONS_TOTAL = Counter(
    "datasoup_notifications_total",
    "Notifications handed to the delivery transport",
    ["kind", "status"],
)

CATALOG_FETCHES_TOTAL = Counter(
    "datasoup_catalog_fetches_total",
    "Catalog queries by outcome",
    ["outcome"],
)
