"""
GridSeries - Background Retention Sweep

Runs the retention sweeper periodically on a daemon thread while ingestion
and aggregation continue.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from gridseries.errors import GridSeriesError
from gridseries.retention.sweeper import RetentionSweeper

logger = logging.getLogger(__name__)


class BackgroundSweepWorker:
    """
    Background worker that sweeps expired readings on a fixed interval.

    Errors from one sweep are logged and the next sweep runs on schedule.
    """

    def __init__(
        self,
        sweeper: RetentionSweeper,
        interval_seconds: float = 300,
        on_swept: Optional[Callable[[int], None]] = None
    ):
        """
        Initialize the background sweep worker.

        Args:
            sweeper: Retention sweeper to run
            interval_seconds: Delay between the end of one sweep and the next
            on_swept: Optional callback with the removed count after each sweep
        """
        self.sweeper = sweeper
        self.interval_seconds = interval_seconds
        self.on_swept = on_swept

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._sweep_cycles = 0
        self._total_removed = 0
        self._failed_sweeps = 0
        self._last_sweep_time: Optional[float] = None
        self._last_error: Optional[str] = None

    def start(self) -> None:
        """Start the background sweep thread."""
        if self.is_running:
            logger.warning("[WARN] Background sweep already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._sweep_loop,
            name="BackgroundSweepWorker",
            daemon=True
        )
        self._thread.start()
        logger.info(f"[OK] Background sweep started (interval: {self.interval_seconds}s)")

    def stop(self, timeout: float = 5) -> None:
        """Stop the worker and wait for the current sweep to finish."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout=timeout)
        self._thread = None

        logger.info(
            f"[OK] Background sweep stopped "
            f"(cycles: {self._sweep_cycles}, total removed: {self._total_removed})"
        )

    def run_once(self) -> int:
        """
        Run a single sweep cycle and record its outcome.

        Returns:
            Number of readings removed (0 if the sweep failed)
        """
        self._sweep_cycles += 1
        try:
            removed = self.sweeper.sweep()
        except GridSeriesError as error:
            self._failed_sweeps += 1
            self._last_error = str(error)
            logger.error(f"[ERROR] Retention sweep failed: {error}")
            return 0
        except Exception as error:
            self._failed_sweeps += 1
            self._last_error = str(error)
            logger.error(f"[ERROR] Unexpected retention sweep error: {error}", exc_info=True)
            return 0

        self._total_removed += removed
        self._last_sweep_time = time.time()
        self._last_error = None

        if self.on_swept:
            try:
                self.on_swept(removed)
            except Exception as callback_error:
                logger.error(f"[ERROR] Sweep callback failed: {callback_error}")
        return removed

    def _sweep_loop(self) -> None:
        """Main loop - sweep, then wait for the interval or a stop request."""
        logger.info("[...] Background sweep loop starting")
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(self.interval_seconds)

    def get_status(self) -> Dict[str, Any]:
        """Get current worker status for monitoring."""
        return {
            "running": self.is_running,
            "sweep_cycles": self._sweep_cycles,
            "total_removed": self._total_removed,
            "failed_sweeps": self._failed_sweeps,
            "last_sweep_time": self._last_sweep_time,
            "last_error": self._last_error,
            "interval_seconds": self.interval_seconds,
            "max_age_seconds": self.sweeper.policy.max_age_seconds
        }

    @property
    def is_running(self) -> bool:
        """Check if worker thread is alive."""
        return self._thread is not None and self._thread.is_alive()
