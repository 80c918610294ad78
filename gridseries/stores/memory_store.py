"""
GridSeries - In-Memory Stores

Thread-safe in-process implementations of the ordered reading store and the
downsample store. Used by default and by the test suite.
"""

import bisect
import itertools
import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from gridseries.models.queries import RangeFilter
from gridseries.models.readings import PartitionKey, Reading


logger = logging.getLogger(__name__)


class InMemoryReadingStore:
    """
    Append-only, time-ordered reading store partitioned by metadata.

    Each partition is kept sorted by (timestamp, sequence) on insert, so
    out-of-order appends never disturb iteration order. Reads return a
    point-in-time copy taken under the lock; a concurrent sweep cannot
    change a snapshot that has already been handed out.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._partitions: Dict[PartitionKey, List[Reading]] = {}
        self._sort_keys: Dict[PartitionKey, List[Any]] = {}
        self._sequence = itertools.count(1)
        logger.debug("InMemoryReadingStore initialized")

    def append(self, reading: Reading) -> Reading:
        """
        Append a reading and assign its ingestion sequence number.

        Returns:
            The stored reading (with sequence set)
        """
        with self._lock:
            stored = replace(reading, sequence=next(self._sequence))
            key = stored.partition_key()
            readings = self._partitions.setdefault(key, [])
            sort_keys = self._sort_keys.setdefault(key, [])

            position = bisect.bisect_right(sort_keys, stored.sort_key)
            sort_keys.insert(position, stored.sort_key)
            readings.insert(position, stored)
            return stored

    def snapshot(self, range_filter: Optional[RangeFilter] = None) -> List[Reading]:
        """
        Point-in-time copy of all readings matching the filter.

        Returns:
            Readings ordered by partition, then (timestamp, sequence)
        """
        with self._lock:
            view = [list(readings) for _, readings in sorted(
                self._partitions.items(), key=lambda item: str(item[0])
            )]

        result: List[Reading] = []
        for readings in view:
            if range_filter is None:
                result.extend(readings)
            else:
                result.extend(reading for reading in readings if range_filter.matches(reading))
        return result

    def delete_older_than(self, cutoff: datetime) -> int:
        """
        Remove every reading with timestamp strictly before cutoff.

        Returns:
            Number of readings removed
        """
        removed = 0
        with self._lock:
            for key in list(self._partitions):
                sort_keys = self._sort_keys[key]
                # Sequence 0 sorts before any assigned sequence at the same instant
                position = bisect.bisect_left(sort_keys, (cutoff, 0))
                if position == 0:
                    continue
                del sort_keys[:position]
                del self._partitions[key][:position]
                removed += position
                if not self._partitions[key]:
                    del self._partitions[key]
                    del self._sort_keys[key]
        return removed

    def partitions(self) -> List[PartitionKey]:
        """List the partitions currently holding readings."""
        with self._lock:
            return sorted(self._partitions, key=str)

    def count(self) -> int:
        """Total number of stored readings."""
        with self._lock:
            return sum(len(readings) for readings in self._partitions.values())

    def clear(self) -> None:
        with self._lock:
            self._partitions.clear()
            self._sort_keys.clear()

    def close(self) -> None:
        pass


class InMemoryDownsampleStore:
    """
    Keyed secondary store for rollups.

    One table per destination collection; writing an existing key replaces
    the whole row.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def upsert_many(self, collection: str, rows: Mapping[str, Dict[str, Any]]) -> int:
        """
        Replace or insert rows by key.

        Returns:
            Number of rows written
        """
        with self._lock:
            table = self._collections.setdefault(collection, {})
            for key, row in rows.items():
                table[key] = dict(row)
        return len(rows)

    def get_all(self, collection: str) -> Dict[str, Dict[str, Any]]:
        """Copy of every row in a collection, keyed by row key."""
        with self._lock:
            return {key: dict(row) for key, row in self._collections.get(collection, {}).items()}

    def clear(self, collection: str) -> None:
        with self._lock:
            self._collections.pop(collection, None)

    def close(self) -> None:
        pass
