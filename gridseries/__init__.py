"""
GridSeries - Power Utilities Time-Series Rollups

This package ingests metadata-tagged electricity readings into a time-ordered
store, rolls them up with rolling-window and fixed-bucket aggregations, writes
the rollups to a downsampled store and purges expired readings.
"""

__version__ = "26.10.19"
__author__ = "Grid Analytics Engineering"
