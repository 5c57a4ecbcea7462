"""In-process counters and timings for the activity engine. Thread-safe, in-memory."""

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any

RECENT_SAMPLES = 100


@dataclass
class _Timing:
    count: int = 0
    total: float = 0.0
    max: float = 0.0
    recent: deque = field(default_factory=lambda: deque(maxlen=RECENT_SAMPLES))

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.max = max(self.max, value)
        self.recent.append(value)

    def summary(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "sum": self.total,
            "max": self.max,
            "recent_avg": sum(self.recent) / len(self.recent) if self.recent else 0,
        }


class MetricsCollector:
    """
    In-memory registry of counters and timing observations.
    Counters may carry one label (event type, listener, policy) for per-dimension breakdowns.
    Timings keep running totals plus only the last RECENT_SAMPLES observations.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, float] = {}
        self._counters_by_labels: dict[str, dict[str, float]] = {}
        self._timings: dict[str, _Timing] = {}

    def increment(
        self,
        name: str,
        value: float = 1.0,
        *,
        label: str | None = None,
    ) -> None:
        """Increment a counter. With a label, the labelled series is bumped as well as the total."""
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value
            if label is not None:
                series = self._counters_by_labels.setdefault(name, {})
                series[label] = series.get(label, 0) + value

    def observe_duration(self, name: str, duration_ms: float) -> None:
        with self._lock:
            self._timings.setdefault(name, _Timing()).add(duration_ms)

    def get_counter(self, name: str, label: str | None = None) -> float:
        with self._lock:
            if label is None:
                return self._counters.get(name, 0)
            return self._counters_by_labels.get(name, {}).get(label, 0)

    def sample_count(self, name: str) -> int:
        """Number of retained timing samples for name (bounded by RECENT_SAMPLES)."""
        with self._lock:
            timing = self._timings.get(name)
            return len(timing.recent) if timing else 0

    def export_metrics(self) -> dict[str, Any]:
        """Snapshot of all counters and timing summaries."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "counters_by_labels": {
                    k: dict(v) for k, v in self._counters_by_labels.items()
                },
                "timings": {k: v.summary() for k, v in self._timings.items()},
            }

    def reset(self) -> None:
        """Reset all metrics (for tests)."""
        with self._lock:
            self._counters.clear()
            self._counters_by_labels.clear()
            self._timings.clear()
