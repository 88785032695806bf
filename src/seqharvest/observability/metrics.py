"""
Defines Prometheus metrics for the harvester and the query front end.
"""

from __future__ import annotations

from typing import Any, Dict

from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Gauge as _OrigGauge
from prometheus_client import Histogram as _OrigHistogram

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# Importing this module more than once (test collection, app reloads) must not
# register the same collector twice.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[override]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing  # type: ignore[return-value]

        try:
            return metric_cls(name, documentation, *args, **kwargs)  # type: ignore[call-arg]
        except ValueError:
            # Registration lost the race, fall back to the now-existing collector.
            return _PROM_REGISTRY._names_to_collectors[name]  # type: ignore[return-value]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)  # type: ignore[assignment]
Gauge = _duplicate_safe_factory(_OrigGauge)  # type: ignore[assignment]
Histogram = _duplicate_safe_factory(_OrigHistogram)  # type: ignore[assignment]


def _create_metrics() -> Dict[str, Any]:
    return {
        "records_ingested": Counter(
            "seqharvest_records_ingested_total",
            "Total number of upstream records stored and indexed",
        ),
        "sequences_new": Counter(
            "seqharvest_sequences_new_total",
            "Total number of sequence files written for previously unseen hashes",
        ),
        "harvest_cycles": Counter(
            "seqharvest_harvest_cycles_total",
            "Harvest cycles by outcome",
            ["outcome"],
        ),
        "harvest_cursor": Gauge(
            "seqharvest_harvest_cursor",
            "Number of upstream records committed",
        ),
        "harvester_state": Gauge(
            "seqharvest_harvester_state",
            "Current harvester state (1 for the active state)",
            ["state"],
        ),
        "fetch_latency_seconds": Histogram(
            "seqharvest_fetch_latency_seconds",
            "Time taken to fetch one upstream page",
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
        ),
        "search_duration_seconds": Histogram(
            "seqharvest_search_duration_seconds",
            "Time taken by a search including reconciliation",
            buckets=[0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 120.0],
        ),
        "search_failures": Counter(
            "seqharvest_search_failures_total",
            "Searches that failed, by error type",
            ["error"],
        ),
        "reconcile_misses": Counter(
            "seqharvest_reconcile_misses_total",
            "Search hits whose hash had no dedup entry yet",
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()
