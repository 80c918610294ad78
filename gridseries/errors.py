"""
GridSeries - Error Types

Exception hierarchy shared by the ingestion, aggregation and storage layers.
"""

from typing import Any, List, Optional


class GridSeriesError(Exception):
    """Base class for all GridSeries errors."""


class ValidationError(GridSeriesError):
    """
    Raised when a reading or document is missing required fields or carries
    malformed values.

    Rejected at ingest and never retried.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidRangeError(ValidationError):
    """Raised when a range filter has lower bound after upper bound."""


class EmptyInputError(GridSeriesError):
    """Raised when an aggregation request matches no readings."""


class StoreUnavailableError(GridSeriesError):
    """
    Raised when the backing store cannot be reached.

    Callers at the ingest and sweep boundary retry with backoff before
    surfacing this error.
    """


class AggregationCancelledError(GridSeriesError):
    """
    Raised when an aggregation is cancelled before it finishes.

    partial_results holds the results of partitions that completed before
    the cancellation was observed.
    """

    def __init__(self, message: str, partial_results: Optional[List[Any]] = None):
        super().__init__(message)
        self.partial_results = partial_results or []
