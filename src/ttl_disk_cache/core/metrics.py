"""
In-process cache counters with rough p50/p95 poll latency.
Why: quick hit-rate visibility without a metrics backend.
"""

from typing import Dict, List

_MAX_SAMPLES = 1000


def _percentile(values: List[int], p: float) -> int:
    if not values:
        return 0
    idx = max(0, min(len(values) - 1, int(len(values) * p)))
    return sorted(values)[idx]


class _Metrics:
    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0
        self.errors = 0
        self._latencies: List[int] = []

    def record_hit(self) -> None:
        self.hits += 1

    def record_miss(self) -> None:
        self.misses += 1

    def record_error(self) -> None:
        self.errors += 1

    def record_latency(self, ms: int) -> None:
        self._latencies.append(ms)
        if len(self._latencies) > _MAX_SAMPLES:
            del self._latencies[: -_MAX_SAMPLES]

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.errors = 0
        self._latencies = []

    def snapshot(self) -> Dict[str, int]:
        lat = list(self._latencies)
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "p50_ms": _percentile(lat, 0.50),
            "p95_ms": _percentile(lat, 0.95),
        }


metrics = _Metrics()
