"""
GridSeries - Query Models

Parameters for range filters, rolling windows, bucketing and downsample
targets. Validation happens on construction so that malformed requests fail
before any store is touched.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from gridseries.errors import InvalidRangeError, ValidationError
from gridseries.models.readings import Reading
from gridseries.utils.timestamps import ensure_utc, format_timestamp


DEFAULT_WINDOW_COUNT = 20
DEFAULT_BUCKET_COUNT = 24


def _require_int(value: Any, field_name: str) -> None:
    """Raise ValidationError unless value is an int (bool excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            f"{field_name} must be an integer, got {value!r}", field=field_name
        )


def _require_number(value: Any, field_name: str) -> None:
    """Raise ValidationError unless value is an int or float (bool excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(
            f"{field_name} must be a number, got {value!r}", field=field_name
        )


class WindowUnit(str, Enum):
    """Units accepted for duration-based windows."""
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"

    def to_timedelta(self, amount: float) -> timedelta:
        """Convert an amount of this unit to a timedelta."""
        return timedelta(**{self.value: amount})


class ConflictPolicy(str, Enum):
    """What a downsample write does when the key already exists."""
    REPLACE = "replace"


@dataclass(frozen=True)
class RangeFilter:
    """
    Inclusive timestamp range with optional metadata equality match.

    Either bound may be None (open-ended).
    """
    lower: Optional[datetime] = None
    upper: Optional[datetime] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.lower is not None:
            object.__setattr__(self, "lower", ensure_utc(self.lower))
        if self.upper is not None:
            object.__setattr__(self, "upper", ensure_utc(self.upper))
        if self.lower is not None and self.upper is not None and self.lower > self.upper:
            raise InvalidRangeError(
                f"Invalid range: lower bound {format_timestamp(self.lower)} "
                f"is after upper bound {format_timestamp(self.upper)}"
            )

    def matches(self, reading: Reading) -> bool:
        """Check whether a reading falls within the filter."""
        if self.lower is not None and reading.timestamp < self.lower:
            return False
        if self.upper is not None and reading.timestamp > self.upper:
            return False
        for name, expected in self.metadata.items():
            if reading.metadata.get(name) != expected:
                return False
        return True

    def describe(self) -> str:
        """Human-readable form for log messages."""
        lower = format_timestamp(self.lower) if self.lower else "-inf"
        upper = format_timestamp(self.upper) if self.upper else "+inf"
        text = f"[{lower}, {upper}]"
        if self.metadata:
            text += f" where {dict(self.metadata)}"
        return text


@dataclass(frozen=True)
class RollingWindowSpec:
    """
    Rolling window definition.

    Exactly one of count_before (document window) or duration_before
    (range window) must be set. The *_after fields extend the window past
    the current reading and default to 0.
    """
    count_before: Optional[int] = None
    count_after: int = 0
    duration_before: Optional[float] = None
    duration_after: float = 0
    unit: WindowUnit = WindowUnit.SECONDS

    def __post_init__(self):
        if not isinstance(self.unit, WindowUnit):
            try:
                object.__setattr__(self, "unit", WindowUnit(self.unit))
            except ValueError:
                raise ValidationError(f"Unknown window unit: {self.unit!r}", field="unit")

        if (self.count_before is None) == (self.duration_before is None):
            raise ValidationError(
                "Window spec needs exactly one of count_before or duration_before"
            )
        if self.count_before is not None:
            _require_int(self.count_before, "count_before")
            _require_int(self.count_after, "count_after")
            if self.count_before < 0 or self.count_after < 0:
                raise ValidationError("Window counts must not be negative")
        if self.duration_before is not None:
            _require_number(self.duration_before, "duration_before")
            _require_number(self.duration_after, "duration_after")
            if self.duration_before < 0 or self.duration_after < 0:
                raise ValidationError("Window durations must not be negative")

    @classmethod
    def count(cls, before: int = DEFAULT_WINDOW_COUNT, after: int = 0) -> "RollingWindowSpec":
        """Window over the current reading and its neighbours by position."""
        return cls(count_before=before, count_after=after)

    @classmethod
    def duration(
        cls,
        before: float,
        after: float = 0,
        unit: WindowUnit = WindowUnit.SECONDS
    ) -> "RollingWindowSpec":
        """Window over all readings within a trailing (and leading) duration."""
        return cls(duration_before=before, duration_after=after, unit=unit)

    @property
    def is_count_window(self) -> bool:
        return self.count_before is not None

    @property
    def lookback(self) -> timedelta:
        """Trailing duration of a range window."""
        return self.unit.to_timedelta(self.duration_before or 0)

    @property
    def lookahead(self) -> timedelta:
        """Leading duration of a range window."""
        return self.unit.to_timedelta(self.duration_after)

    def to_dict(self) -> Dict[str, Any]:
        """Window clause in the aggregation-pipeline shape."""
        if self.is_count_window:
            return {"documents": [-(self.count_before or 0), self.count_after]}
        return {
            "range": [-(self.duration_before or 0), self.duration_after],
            "unit": self.unit.value
        }


@dataclass(frozen=True)
class BucketSpec:
    """Fixed-bucket downsampling parameters."""
    bucket_count: int = DEFAULT_BUCKET_COUNT

    def __post_init__(self):
        _require_int(self.bucket_count, "bucket_count")
        if self.bucket_count < 1:
            raise ValidationError("bucket_count must be at least 1", field="bucket_count")


@dataclass(frozen=True)
class MergeTarget:
    """Destination for downsampled output."""
    collection: str
    conflict_policy: ConflictPolicy = ConflictPolicy.REPLACE

    def __post_init__(self):
        if not self.collection:
            raise ValidationError("Destination collection name must not be empty")
        if not isinstance(self.conflict_policy, ConflictPolicy):
            try:
                object.__setattr__(self, "conflict_policy", ConflictPolicy(self.conflict_policy))
            except ValueError:
                raise ValidationError(
                    f"Unsupported conflict policy: {self.conflict_policy!r}",
                    field="conflict_policy"
                )
