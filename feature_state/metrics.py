"""Prometheus metric helpers and feature state metrics."""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, Tuple

from prometheus_client import Counter, Histogram

_log = logging.getLogger(__name__)


def _label_tuple(labels: Iterable[str] | None) -> Tuple[str, ...]:
    return tuple(labels) if labels else ()


def metric_counter(
    name: str,
    documentation: str,
    labels: Iterable[str] | None = None,
) -> Counter:
    return Counter(name, documentation, _label_tuple(labels))


def metric_histogram(
    name: str,
    documentation: str,
    labels: Iterable[str] | None = None,
) -> Histogram:
    return Histogram(name, documentation, _label_tuple(labels))


# Names kept stable for dashboards.
FEATURE_LOOKUPS = metric_counter(
    "feature_state_lookups_total",
    "Feature state lookups by operation and result",
    ["op", "result"],
)
FEATURE_RESOLUTIONS = metric_counter(
    "feature_state_resolutions_total",
    "Initial feature values computed on a miss",
    ["kind"],
)
FEATURE_WRITES = metric_counter(
    "feature_state_writes_total",
    "Records written to the backend",
    ["op"],
)
FEATURE_CORRUPT_RECORDS = metric_counter(
    "feature_state_corrupt_records_total",
    "Stored records that failed to decode",
)
BACKEND_LATENCY = metric_histogram(
    "feature_state_backend_seconds",
    "Backend call latency",
    ["backend", "op"],
)


def best_effort(msg: str, fn: Callable[[], Any]) -> None:
    """Run a metrics update; never raise into the caller."""
    try:
        fn()
    except Exception as e:  # pragma: no cover
        _log.debug("%s: %s", msg, e)


def inc_lookup(op: str, result: str, amount: int = 1) -> None:
    if amount <= 0:
        return
    best_effort(
        "lookup counter",
        lambda: FEATURE_LOOKUPS.labels(op=op, result=result).inc(amount),
    )


def inc_resolution(kind: str) -> None:
    best_effort("resolution counter", lambda: FEATURE_RESOLUTIONS.labels(kind=kind).inc())


def inc_write(op: str, amount: int = 1) -> None:
    best_effort("write counter", lambda: FEATURE_WRITES.labels(op=op).inc(amount))


def inc_corrupt() -> None:
    best_effort("corrupt counter", FEATURE_CORRUPT_RECORDS.inc)


@contextmanager
def backend_timer(backend: str, op: str) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        best_effort(
            "backend latency",
            lambda: BACKEND_LATENCY.labels(backend=backend, op=op).observe(elapsed),
        )


__all__ = [
    "FEATURE_LOOKUPS",
    "FEATURE_RESOLUTIONS",
    "FEATURE_WRITES",
    "FEATURE_CORRUPT_RECORDS",
    "BACKEND_LATENCY",
    "backend_timer",
    "best_effort",
    "inc_corrupt",
    "inc_lookup",
    "inc_resolution",
    "inc_write",
]
