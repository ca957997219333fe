"""Prometheus counters for order mutations and reconciliation refetches."""
from __future__ import annotations

from prometheus_client import Counter

ORDER_MUTATIONS = Counter(
    "order_mutations_total",
    "Order mutations sent to the backend",
    ["operation", "outcome"],
)
ORDER_RESYNCS = Counter(
    "order_resyncs_total",
    "Full order refetches from the backend",
    ["reason"],
)
