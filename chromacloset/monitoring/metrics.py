"""Prometheus exporter helpers."""

from __future__ import annotations

from prometheus_client import Counter, Gauge


scan_outcomes_total = Counter(
    "scan_outcomes_total",
    "Finished scan attempts grouped by outcome.",
    ["kind"],
)

extraction_failures_total = Counter(
    "extraction_failures_total",
    "Extraction requests that failed to reach the AI service.",
)

items_committed_total = Counter(
    "items_committed_total",
    "Wardrobe items committed to the inventory.",
)

persistence_failures_total = Counter(
    "persistence_failures_total",
    "Inventory writes that could not be persisted.",
)

camera_active = Gauge(
    "camera_active",
    "Number of camera devices currently held open.",
)
