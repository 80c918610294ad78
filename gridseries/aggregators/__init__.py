"""
GridSeries - Aggregators Package

Rolling-window and fixed-bucket aggregation modules.
"""

from gridseries.aggregators.window_aggregator import (
    AggregateCalculator,
    BucketAggregator,
    RollingWindowAggregator,
    WindowAggregator,
    CPU_COUNT
)

__all__ = [
    "AggregateCalculator",
    "BucketAggregator",
    "RollingWindowAggregator",
    "WindowAggregator",
    "CPU_COUNT"
]
