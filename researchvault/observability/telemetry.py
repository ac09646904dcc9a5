"""
Pipeline counters and latencies, kept in process memory.

Every stage bumps counters under its own prefix (detection.*, classifier.*,
bridge.*, store.*). `snapshot()` is what the /health/metrics route serves.
"""

from __future__ import annotations

import contextlib
import logging
import time
from collections import Counter, defaultdict
from collections.abc import Iterator
from typing import Any

logger = logging.getLogger("researchvault.telemetry")

_counters: Counter[str] = Counter()
_latencies: defaultdict[str, list[float]] = defaultdict(list)


def log_event(event_name: str, **fields: Any) -> None:
    """Structured INFO line. Titles and URLs must already be redacted."""
    logger.info("event=%s %s", event_name, fields)


def counter(name: str, increment: int = 1) -> int:
    _counters[name] += increment
    return _counters[name]


@contextlib.contextmanager
def time_block(metric_name: str) -> Iterator[None]:
    """Record the wall time of the block, in seconds, under metric_name."""
    start = time.perf_counter()
    try:
        yield
    finally:
        _latencies[metric_name].append(time.perf_counter() - start)


def get_latency_stats(metric_name: str) -> dict[str, float]:
    samples = sorted(_latencies.get(metric_name, ()))
    if not samples:
        return {"count": 0, "min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p95": 0.0}
    count = len(samples)
    return {
        "count": count,
        "min": samples[0],
        "max": samples[-1],
        "avg": sum(samples) / count,
        "p50": samples[count // 2],
        "p95": samples[min(int(count * 0.95), count - 1)],
    }


def snapshot() -> dict[str, Any]:
    """Current counters plus latency stats for every timed block."""
    return {
        "counters": dict(sorted(_counters.items())),
        "latencies": {name: get_latency_stats(name) for name in sorted(_latencies)},
    }


def reset_telemetry() -> None:
    _counters.clear()
    _latencies.clear()
