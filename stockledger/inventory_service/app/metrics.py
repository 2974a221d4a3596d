"""Prometheus metrics for the stock ledger."""

from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Histogram

LEDGER_ENTRIES_TOTAL: Final = Counter(
    "ledger_entries_total",
    "Ledger entries committed, by action.",
    labelnames=("action",),
)

LEDGER_OPERATION_FAILURES_TOTAL: Final = Counter(
    "ledger_operation_failures_total",
    "Ledger operations rejected or aborted, by operation and error code.",
    labelnames=("operation", "error"),
)

LEDGER_OPERATION_LATENCY_SECONDS: Final = Histogram(
    "ledger_operation_latency_seconds",
    "Time spent applying a ledger operation, including lock wait and commit.",
    labelnames=("operation",),
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5),
)

ALERTS_EVALUATED_TOTAL: Final = Counter(
    "stock_alerts_evaluated_total",
    "Alerts produced by evaluations, by type and severity.",
    labelnames=("type", "severity"),
)
