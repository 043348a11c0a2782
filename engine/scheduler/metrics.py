import time
from collections import defaultdict
from typing import Any, Dict, List

from .results import ExecutionResult

DURATION_HISTOGRAM = "task_duration_seconds"


class SchedulerMetrics:
    """
    Engine-owned metrics collector.

    Used for:
    - run summaries
    - progress/ETA estimates
    """

    def __init__(self):
        self.counters: Dict[str, int] = defaultdict(int)
        self.gauges: Dict[str, int] = {}
        self.histograms: Dict[str, List[float]] = defaultdict(list)
        self.timestamps: Dict[str, float] = {}

    # ---- counters / gauges ----
    def inc(self, name: str, value: int = 1) -> None:
        self.counters[name] += value

    def set_gauge(self, name: str, value: int) -> None:
        self.gauges[name] = value

    # ---- histograms ----
    def observe(self, name: str, value: float) -> None:
        self.histograms[name].append(value)

    def mean(self, name: str) -> float:
        values = self.histograms.get(name)
        if not values:
            return 0.0
        return sum(values) / len(values)

    # ---- run timing ----
    def mark_time(self, key: str) -> None:
        self.timestamps[key] = time.monotonic()

    def elapsed_since(self, key: str) -> float:
        start = self.timestamps.get(key)
        if start is None:
            return 0.0
        return time.monotonic() - start

    # ---- task results ----
    def record_result(self, result: ExecutionResult) -> None:
        self.inc(f"tasks_{result.status.value.lower()}_total")
        self.observe(DURATION_HISTOGRAM, result.duration_seconds)

    def estimate_remaining(self, remaining_tasks: int) -> float:
        """Naive ETA: mean observed task duration times tasks left."""
        return self.mean(DURATION_HISTOGRAM) * max(0, remaining_tasks)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "counters": dict(self.counters),
            "gauges": dict(self.gauges),
            "mean_task_duration_seconds": round(self.mean(DURATION_HISTOGRAM), 3),
        }
