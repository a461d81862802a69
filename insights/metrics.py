"""Metrics facade.

Service code should ONLY call the semantic helpers here so the backend can
change freely.

Metrics:
- insights_aggregator_runs_total        Aggregator snapshots computed, per aggregator
- insights_aggregator_failures_total    Aggregator snapshots that failed, per aggregator
- insights_aggregator_latency_seconds   Wall time of one aggregator run
- insights_status_fallback_total        Unrecognized status values mapped to UNKNOWN, per entity
- insights_cache_hits_total / misses / errors
- insights_rate_limit_exceeded_total    Requests rejected with 429
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Histogram

logger = logging.getLogger("metrics")

_AGGREGATOR_RUNS = Counter(
    "insights_aggregator_runs_total", "Aggregator snapshots computed", ["aggregator"]
)
_AGGREGATOR_FAILURES = Counter(
    "insights_aggregator_failures_total", "Aggregator snapshots that failed", ["aggregator"]
)
_AGGREGATOR_LATENCY = Histogram(
    "insights_aggregator_latency_seconds",
    "Wall time of one aggregator run",
    ["aggregator"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
_STATUS_FALLBACK = Counter(
    "insights_status_fallback_total", "Unrecognized status values mapped to UNKNOWN", ["entity"]
)
_CACHE_HITS = Counter("insights_cache_hits_total", "Query cache hits", ["aggregator"])
_CACHE_MISSES = Counter("insights_cache_misses_total", "Query cache misses or stale entries", ["aggregator"])
_CACHE_ERRORS = Counter("insights_cache_errors_total", "Query cache backend errors", ["operation"])
_RATE_LIMITED = Counter("insights_rate_limit_exceeded_total", "Requests rejected by the rate limiter")


def aggregator_succeeded(aggregator: str, seconds: float) -> None:
    _AGGREGATOR_RUNS.labels(aggregator=aggregator).inc()
    _AGGREGATOR_LATENCY.labels(aggregator=aggregator).observe(seconds)


def aggregator_failed(aggregator: str) -> None:
    _AGGREGATOR_FAILURES.labels(aggregator=aggregator).inc()


@contextmanager
def track_aggregator(aggregator: str) -> Iterator[None]:
    """Count and time one aggregator run; failures are counted and re-raised."""
    started = time.perf_counter()
    try:
        yield
    except BaseException:
        aggregator_failed(aggregator)
        raise
    aggregator_succeeded(aggregator, time.perf_counter() - started)


def status_fallback(entity: str) -> None:
    _STATUS_FALLBACK.labels(entity=entity).inc()


def cache_hit(aggregator: str) -> None:
    _CACHE_HITS.labels(aggregator=aggregator).inc()


def cache_miss(aggregator: str) -> None:
    _CACHE_MISSES.labels(aggregator=aggregator).inc()


def cache_error(operation: str) -> None:
    _CACHE_ERRORS.labels(operation=operation).inc()
    logger.debug("metric insights_cache_errors_total{operation=%s} += 1", operation)


def rate_limit_exceeded() -> None:
    _RATE_LIMITED.inc()


__all__ = [
    "aggregator_succeeded",
    "aggregator_failed",
    "track_aggregator",
    "status_fallback",
    "cache_hit",
    "cache_miss",
    "cache_error",
    "rate_limit_exceeded",
]
