"""
GridSeries - Data Models Package

Dataclass models for readings, rollups, collections and query parameters.
"""

from gridseries.models.collection import (
    CollectionConfig,
    CustomerType,
    Granularity,
    RetentionPolicy
)
from gridseries.models.queries import (
    BucketSpec,
    ConflictPolicy,
    MergeTarget,
    RangeFilter,
    RollingWindowSpec,
    WindowUnit
)
from gridseries.models.readings import (
    BucketResult,
    PartitionKey,
    PartitionSummary,
    Reading,
    WindowResult
)

__all__ = [
    "BucketResult",
    "BucketSpec",
    "CollectionConfig",
    "ConflictPolicy",
    "CustomerType",
    "Granularity",
    "MergeTarget",
    "PartitionKey",
    "PartitionSummary",
    "RangeFilter",
    "Reading",
    "RetentionPolicy",
    "RollingWindowSpec",
    "WindowResult",
    "WindowUnit"
]
