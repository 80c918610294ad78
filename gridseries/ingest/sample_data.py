"""
GridSeries - Sample Data Generator

Produces synthetic electricity consumption documents for every
(region, customer type) series, following a simple daily load curve. Useful
for trying the pipeline without a real meter feed.
"""

import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, Optional, Sequence

from gridseries.models.collection import CollectionConfig, CustomerType
from gridseries.utils.timestamps import format_timestamp


DEFAULT_REGIONS = ("north", "south", "east", "west")

# Typical average draw (kWh per interval) by customer segment
BASE_LOAD = {
    CustomerType.HOUSEHOLD.value: 1.2,
    CustomerType.BUSINESS.value: 8.5,
    CustomerType.PUBLIC.value: 4.0,
}


@dataclass(frozen=True)
class TimeSpec:
    start: datetime
    step: timedelta


def _times(spec: TimeSpec, count: int) -> Iterator[datetime]:
    current = spec.start
    for _ in range(count):
        yield current
        current = current + spec.step


def _load_factor(timestamp: datetime) -> float:
    # Peak in the early evening, trough before dawn
    hour = timestamp.hour + timestamp.minute / 60
    return 1.0 + 0.5 * math.sin((hour - 12) / 24 * 2 * math.pi)


def generate_documents(
    count: int,
    times: Optional[TimeSpec] = None,
    regions: Sequence[str] = DEFAULT_REGIONS,
    customer_types: Sequence[str] = tuple(BASE_LOAD),
    collection: Optional[CollectionConfig] = None,
    seed: Optional[int] = None,
    values_as_strings: bool = False
) -> Iterator[Dict[str, object]]:
    """
    Yield count timestamps' worth of documents for each series.

    Args:
        count: Number of timestamps per series
        times: Start and step (default: 2024-01-01T00:00Z every 15 minutes)
        regions: Region names
        customer_types: Customer types (household, business, public)
        collection: Field layout of the generated documents
        seed: Random seed for reproducible output
        values_as_strings: Emit measurements as numeric strings
    """
    collection = collection or CollectionConfig()
    times = times or TimeSpec(
        start=datetime(2024, 1, 1, tzinfo=timezone.utc),
        step=timedelta(minutes=15)
    )
    rng = random.Random(seed)

    for timestamp in _times(times, count):
        for region in regions:
            for customer_type in customer_types:
                base = BASE_LOAD.get(customer_type, 1.0)
                value = round(base * _load_factor(timestamp) * rng.uniform(0.85, 1.15), 3)
                yield {
                    collection.time_field: format_timestamp(timestamp),
                    collection.meta_field: {"region": region, "type": customer_type},
                    collection.measurement_field: str(value) if values_as_strings else value,
                }
