"""
GridSeries - Reading and Result Models

Data models for ingested readings and the rollups computed from them.
Grain: Partition x Timestamp (rolling) or Partition x Bucket (downsampled)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple
from urllib.parse import unquote

from gridseries.utils.timestamps import format_timestamp, parse_timestamp, to_epoch


def _escape(text: str) -> str:
    """Percent-encode the characters that delimit a partition key string."""
    return text.replace("%", "%25").replace("|", "%7C").replace("=", "%3D")


@dataclass(frozen=True)
class PartitionKey:
    """
    Grouping key over a reading's metadata.

    Two readings with equal keys belong to the same logical series.
    Stored as sorted (field, value) pairs so that it is hashable and
    independent of metadata ordering. The string form is
    "name=value|name=value" with "%", "|" and "=" percent-encoded.
    """
    items: Tuple[Tuple[str, str], ...]

    @classmethod
    def from_metadata(
        cls,
        metadata: Mapping[str, Any],
        fields: Optional[Iterable[str]] = None
    ) -> "PartitionKey":
        """
        Build a partition key from metadata.

        Args:
            metadata: Reading metadata
            fields: Metadata fields to partition by (default: all fields)

        Returns:
            PartitionKey instance
        """
        selected = sorted(fields) if fields is not None else sorted(metadata)
        return cls(tuple((name, str(metadata.get(name, ""))) for name in selected))

    @classmethod
    def parse(cls, text: str) -> "PartitionKey":
        """Parse the string form produced by __str__."""
        if not text:
            return cls(())
        pairs = []
        for part in text.split("|"):
            name, _, value = part.partition("=")
            pairs.append((unquote(name), unquote(value)))
        return cls(tuple(sorted(pairs)))

    def as_dict(self) -> Dict[str, str]:
        """Return the key as a metadata-style dictionary."""
        return dict(self.items)

    def __str__(self) -> str:
        return "|".join(f"{_escape(name)}={_escape(value)}" for name, value in self.items)


@dataclass(frozen=True)
class Reading:
    """
    A single timestamped, metadata-tagged measurement.

    Immutable once ingested. The sequence number is assigned by the store
    on append and breaks ties between equal timestamps.
    """
    timestamp: datetime
    metadata: Mapping[str, Any]
    value: float
    sequence: int = 0

    @property
    def epoch(self) -> float:
        """Timestamp as epoch seconds."""
        return to_epoch(self.timestamp)

    @property
    def sort_key(self) -> Tuple[datetime, int]:
        """Ordering within a partition: timestamp, then ingestion order."""
        return (self.timestamp, self.sequence)

    def partition_key(self, fields: Optional[Iterable[str]] = None) -> PartitionKey:
        """Return the partition this reading belongs to."""
        return PartitionKey.from_metadata(self.metadata, fields)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "timestamp": format_timestamp(self.timestamp),
            "metadata": dict(self.metadata),
            "value": self.value,
            "sequence": self.sequence
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Reading":
        """Rebuild a reading from its stored dictionary form."""
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            metadata=dict(data.get("metadata") or {}),
            value=float(data["value"]),
            sequence=int(data.get("sequence", 0))
        )


@dataclass(frozen=True)
class WindowResult:
    """
    Rolling-window aggregate emitted for one input reading.

    Primary Key: partition_key + timestamp
    """
    partition_key: PartitionKey
    timestamp: datetime
    value: float
    sample_count: int

    @property
    def sink_key(self) -> str:
        """Key used for replace-on-conflict writes."""
        return f"{self.partition_key}@{format_timestamp(self.timestamp)}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for the downsample store."""
        return {
            "partition": self.partition_key.as_dict(),
            "timestamp": format_timestamp(self.timestamp),
            "value": self.value,
            "sample_count": self.sample_count
        }


@dataclass(frozen=True)
class BucketResult:
    """
    Fixed-bucket aggregate for one partition and one bucket.

    Primary Key: partition_key + bucket_start
    """
    partition_key: PartitionKey
    bucket_index: int
    bucket_start: datetime
    bucket_end: datetime
    timestamp: datetime  # earliest reading in the bucket
    value: float  # mean of the bucket's readings
    sample_count: int
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def sink_key(self) -> str:
        """Key used for replace-on-conflict writes."""
        return f"{self.partition_key}@{format_timestamp(self.bucket_start)}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for the downsample store."""
        return {
            "partition": self.partition_key.as_dict(),
            "bucket_index": self.bucket_index,
            "bucket_start": format_timestamp(self.bucket_start),
            "bucket_end": format_timestamp(self.bucket_end),
            "timestamp": format_timestamp(self.timestamp),
            "value": self.value,
            "sample_count": self.sample_count,
            "metadata": dict(self.metadata)
        }


@dataclass(frozen=True)
class PartitionSummary:
    """Per-partition statistics over a filtered set of readings."""
    partition_key: PartitionKey
    count: int
    mean: float
    minimum: float
    maximum: float
    first_timestamp: datetime
    last_timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for display."""
        return {
            "partition": self.partition_key.as_dict(),
            "count": self.count,
            "mean": self.mean,
            "min": self.minimum,
            "max": self.maximum,
            "first_timestamp": format_timestamp(self.first_timestamp),
            "last_timestamp": format_timestamp(self.last_timestamp)
        }
