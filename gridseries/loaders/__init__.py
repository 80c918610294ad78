"""
GridSeries - Loaders Package

Writers for the downsampled store.
"""

from gridseries.loaders.downsample_sink import DownsampleSink

__all__ = [
    "DownsampleSink"
]
