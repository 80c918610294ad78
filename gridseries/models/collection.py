"""
GridSeries - Collection Models

Declarative description of a time-series collection and its retention.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Granularity(str, Enum):
    """Expected interval between consecutive readings of one series."""
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"


class CustomerType(str, Enum):
    """Customer segment carried in reading metadata."""
    HOUSEHOLD = "household"
    BUSINESS = "business"
    PUBLIC = "public"


@dataclass(frozen=True)
class CollectionConfig:
    """
    Time-series collection configuration.

    Names the document fields holding the timestamp, the metadata object and
    the measurement, plus the optional automatic expiry.
    """
    time_field: str = "timestamp"
    meta_field: str = "metadata"
    measurement_field: str = "value"
    granularity: Granularity = Granularity.MINUTES
    expire_after_seconds: Optional[int] = None

    def __post_init__(self):
        for name in ("time_field", "meta_field", "measurement_field"):
            if not getattr(self, name):
                raise ValueError(f"{name} must not be empty")
        if len({self.time_field, self.meta_field, self.measurement_field}) != 3:
            raise ValueError("time_field, meta_field and measurement_field must differ")
        if not isinstance(self.granularity, Granularity):
            object.__setattr__(self, "granularity", Granularity(self.granularity))
        if self.expire_after_seconds is not None and self.expire_after_seconds <= 0:
            raise ValueError("expire_after_seconds must be positive")

    def to_dict(self) -> dict:
        """Convert to the collection options document."""
        options = {
            "timeField": self.time_field,
            "metaField": self.meta_field,
            "granularity": self.granularity.value
        }
        if self.expire_after_seconds is not None:
            options["expireAfterSeconds"] = self.expire_after_seconds
        return options


@dataclass(frozen=True)
class RetentionPolicy:
    """Age-based retention applied uniformly to the ordered store."""
    max_age_seconds: int

    def __post_init__(self):
        if self.max_age_seconds <= 0:
            raise ValueError("max_age_seconds must be positive")

    @classmethod
    def from_collection(cls, config: CollectionConfig) -> Optional["RetentionPolicy"]:
        """Derive the policy from a collection's expiry, if it has one."""
        if config.expire_after_seconds is None:
            return None
        return cls(max_age_seconds=config.expire_after_seconds)
