"""
GridSeries - Retention Package

Age-based purging of the ordered reading store.
"""

from gridseries.retention.sweeper import RetentionSweeper
from gridseries.retention.background_sweep import BackgroundSweepWorker

__all__ = [
    "BackgroundSweepWorker",
    "RetentionSweeper"
]
