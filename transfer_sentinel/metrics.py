"""Prometheus metrics shared by the pipeline components."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

TRANSFERS_TOTAL = Counter(
    "sentinel_transfers_total",
    "Transfer notifications handled, by outcome",
    ["outcome"],
)
DETECTIONS_TOTAL = Counter(
    "sentinel_detections_total",
    "Wallet detections run, by outcome",
    ["outcome"],
)
SUBSCRIBE_FAILURES_TOTAL = Counter(
    "sentinel_subscribe_failures_total",
    "Failed attempts to open a Transfer subscription",
)
ACTIVE_SUBSCRIPTIONS = Gauge(
    "sentinel_active_subscriptions",
    "Contracts currently being watched",
)
DETECTIONS_IN_FLIGHT = Gauge(
    "sentinel_detections_in_flight",
    "Wallet detections currently running",
)
