"""
GridSeries - Ingestor

Validates readings and documents and appends them to the ordered store.
Validation failures are rejected immediately; store outages are retried with
backoff before surfacing.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple

from gridseries.errors import ValidationError
from gridseries.models.collection import CollectionConfig, CustomerType
from gridseries.models.readings import Reading
from gridseries.utils.config import OperationalConfig
from gridseries.utils.performance import timed
from gridseries.utils.retry import execute_with_retry
from gridseries.utils.timestamps import ensure_utc, parse_timestamp


logger = logging.getLogger(__name__)

CUSTOMER_TYPES = {customer_type.value for customer_type in CustomerType}


def _coerce_value(raw: Any, field_name: str) -> float:
    """Convert a numeric or numeric-string measurement to a finite float."""
    if raw is None:
        raise ValidationError(f"Missing measurement field '{field_name}'", field=field_name)
    if isinstance(raw, bool):
        raise ValidationError(f"Measurement '{field_name}' must be numeric, got a boolean", field=field_name)

    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        try:
            value = float(raw.strip())
        except ValueError:
            raise ValidationError(
                f"Measurement '{field_name}' is not numeric: {raw!r}", field=field_name
            )
    else:
        raise ValidationError(
            f"Measurement '{field_name}' must be numeric, got {type(raw).__name__}", field=field_name
        )

    if not math.isfinite(value):
        raise ValidationError(f"Measurement '{field_name}' must be finite, got {raw!r}", field=field_name)
    return value


def validate_reading(reading: Reading) -> Reading:
    """
    Check a reading's required fields and normalize it.

    Returns:
        Reading with a UTC timestamp, float value and plain dict metadata

    Raises:
        ValidationError: If timestamp, value or metadata is missing or malformed
    """
    if reading.timestamp is None:
        raise ValidationError("Reading is missing a timestamp", field="timestamp")
    if not isinstance(reading.timestamp, datetime):
        raise ValidationError(
            f"Reading timestamp must be a datetime, got {type(reading.timestamp).__name__}",
            field="timestamp"
        )
    if not isinstance(reading.metadata, Mapping):
        raise ValidationError("Reading metadata must be a mapping", field="metadata")

    return Reading(
        timestamp=ensure_utc(reading.timestamp),
        metadata=dict(reading.metadata),
        value=_coerce_value(reading.value, "value"),
        sequence=reading.sequence
    )


def parse_document(document: Mapping[str, Any], collection: CollectionConfig) -> Reading:
    """
    Build a reading from a document in the collection's shape.

    Expected shape (field names from the collection config):
        {"timestamp": "2024-01-01T00:00:00Z",
         "metadata": {"region": "north", "type": "household"},
         "value": "12.5"}

    Raises:
        ValidationError: If any required field is missing or malformed
    """
    if not isinstance(document, Mapping):
        raise ValidationError(f"Document must be an object, got {type(document).__name__}")

    time_field = collection.time_field
    if document.get(time_field) in (None, ""):
        raise ValidationError(f"Missing time field '{time_field}'", field=time_field)
    try:
        timestamp = parse_timestamp(document[time_field])
    except ValueError as error:
        raise ValidationError(f"Malformed time field '{time_field}': {error}", field=time_field)

    meta_field = collection.meta_field
    metadata = document.get(meta_field)
    if not isinstance(metadata, Mapping):
        raise ValidationError(f"Missing metadata object '{meta_field}'", field=meta_field)

    region = metadata.get("region")
    if not isinstance(region, str) or not region.strip():
        raise ValidationError(f"'{meta_field}.region' must be a non-empty string", field=f"{meta_field}.region")
    customer_type = metadata.get("type")
    if not isinstance(customer_type, str) or customer_type not in CUSTOMER_TYPES:
        raise ValidationError(
            f"'{meta_field}.type' must be one of {sorted(CUSTOMER_TYPES)}, got {customer_type!r}",
            field=f"{meta_field}.type"
        )

    value = _coerce_value(document.get(collection.measurement_field), collection.measurement_field)

    return Reading(timestamp=timestamp, metadata=dict(metadata), value=value)


@dataclass
class IngestSummary:
    """Outcome of a bulk ingest."""
    accepted: int = 0
    rejected: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)

    @property
    def total(self) -> int:
        return self.accepted + self.rejected_count


class Ingestor:
    """
    Appends validated readings to the ordered store.

    No deduplication: ingesting the same reading twice stores it twice.
    """

    def __init__(
        self,
        store,
        collection: Optional[CollectionConfig] = None,
        operational: Optional[OperationalConfig] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the ingestor.

        Args:
            store: Reading store (in-memory or Redis)
            collection: Collection field layout (default: timestamp/metadata/value)
            operational: Retry settings (default: 3 attempts, 1s base delay)
            sleep: Sleep function used between retries
        """
        self.store = store
        self.collection = collection or CollectionConfig()
        self.operational = operational or OperationalConfig()
        self._sleep = sleep
        logger.debug("Ingestor initialized")

    def ingest(self, reading: Reading) -> Reading:
        """
        Validate and append a single reading.

        Returns:
            The stored reading (with its sequence number)

        Raises:
            ValidationError: If the reading is malformed (not retried)
            StoreUnavailableError: If the store stays unreachable after retries
        """
        valid = validate_reading(reading)
        return execute_with_retry(
            "Append reading",
            self.store.append,
            valid,
            max_retries=self.operational.max_retries,
            retry_delay=self.operational.retry_delay,
            sleep=self._sleep
        )

    def ingest_document(self, document: Mapping[str, Any]) -> Reading:
        """Parse a collection-shaped document and ingest it."""
        return self.ingest(parse_document(document, self.collection))

    @timed("ingestor.ingest_documents")
    def ingest_documents(
        self,
        documents: Iterable[Mapping[str, Any]],
        stop_on_error: bool = False
    ) -> IngestSummary:
        """
        Ingest a batch of documents.

        Malformed documents are recorded in the summary and skipped, unless
        stop_on_error is set, in which case the first ValidationError is raised.

        Returns:
            IngestSummary with accepted count and (index, error) pairs
        """
        summary = IngestSummary()

        for index, document in enumerate(documents):
            try:
                self.ingest_document(document)
                summary.accepted += 1
            except ValidationError as error:
                if stop_on_error:
                    raise
                summary.rejected.append((index, str(error)))
                logger.debug(f"Rejected document {index}: {error}")

        if summary.rejected:
            logger.warning(
                f"[WARN] Ingested {summary.accepted} documents, rejected {summary.rejected_count}"
            )
        else:
            logger.info(f"[OK] Ingested {summary.accepted} documents")
        return summary
