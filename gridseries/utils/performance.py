"""
GridSeries - Stage Timing Utilities

Decorator and context manager for measuring how long pipeline stages take
(ingest batches, aggregations, sink writes).

Usage:
    from gridseries.utils.performance import timed, PerformanceTimer

    @timed("aggregator.downsample")
    def downsample(...):
        ...

    with PerformanceTimer("sink.write") as timer:
        ...
    # timer.elapsed_ms available after context exits
"""

import logging
import threading
import time
from collections import deque
from functools import wraps
from typing import Any, Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)

# Measurements kept per stage
HISTORY_SIZE = 100


class StageTimings:
    """
    Thread-safe store of recent durations per pipeline stage.

    Singleton so that timers in worker threads report to one place.
    """

    _instance: Optional["StageTimings"] = None
    _instance_lock = threading.Lock()

    def __new__(cls) -> "StageTimings":
        with cls._instance_lock:
            if cls._instance is None:
                instance = super().__new__(cls)
                instance._timings = {}
                instance._lock = threading.Lock()
                cls._instance = instance
        return cls._instance

    def record(self, stage: str, elapsed_ms: float) -> None:
        """Record a timing measurement."""
        with self._lock:
            history: Deque[float] = self._timings.setdefault(stage, deque(maxlen=HISTORY_SIZE))
            history.append(elapsed_ms)

    def get_stats(self, stage: str) -> Dict[str, float]:
        """
        Get statistics for a stage.

        Returns:
            Dict with count, avg, min, max, last
        """
        with self._lock:
            measurements = list(self._timings.get(stage, ()))
        if not measurements:
            return {"count": 0, "avg": 0.0, "min": 0.0, "max": 0.0, "last": 0.0}
        return {
            "count": len(measurements),
            "avg": sum(measurements) / len(measurements),
            "min": min(measurements),
            "max": max(measurements),
            "last": measurements[-1]
        }

    def get_all_stats(self) -> Dict[str, Dict[str, float]]:
        """Get statistics for every recorded stage."""
        with self._lock:
            stages = list(self._timings)
        return {stage: self.get_stats(stage) for stage in stages}

    def clear(self) -> None:
        with self._lock:
            self._timings.clear()


def get_timings() -> StageTimings:
    """Get the global StageTimings instance."""
    return StageTimings()


class PerformanceTimer:
    """
    Context manager for timing a pipeline stage.

    Logs a warning when the stage runs longer than log_threshold_ms.
    """

    def __init__(self, stage: str, log_threshold_ms: float = 1000.0):
        self.stage = stage
        self.log_threshold_ms = log_threshold_ms
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self) -> "PerformanceTimer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000
        get_timings().record(self.stage, self.elapsed_ms)

        if self.elapsed_ms >= self.log_threshold_ms:
            logger.warning(
                f"[PERF] {self.stage}: {self.elapsed_ms:.1f}ms (threshold: {self.log_threshold_ms}ms)"
            )
        else:
            logger.debug(f"[PERF] {self.stage}: {self.elapsed_ms:.1f}ms")


def timed(stage: str, log_threshold_ms: float = 1000.0) -> Callable:
    """Decorator to time function execution as a named stage."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            with PerformanceTimer(stage, log_threshold_ms):
                return func(*args, **kwargs)
        return wrapper
    return decorator


def format_perf_report() -> str:
    """Multi-line report of stage timings, slowest first."""
    all_stats = get_timings().get_all_stats()
    if not all_stats:
        return "[PERF] No stage timings recorded"

    lines = ["[PERF] Stage timings:", "-" * 60]
    for stage, stats in sorted(all_stats.items(), key=lambda item: item[1]["avg"], reverse=True):
        lines.append(
            f"  {stage}: avg={stats['avg']:.1f}ms, min={stats['min']:.1f}ms, "
            f"max={stats['max']:.1f}ms, count={stats['count']}"
        )
    lines.append("-" * 60)
    return "\n".join(lines)
