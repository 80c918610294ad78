"""
GridSeries - Redis Stores

Redis-backed implementations of the ordered reading store and the downsample
store.

Layout:
- {prefix}:readings:{partition}   sorted set, score = epoch seconds,
                                  member = JSON reading (includes sequence)
- {prefix}:partitions             set of partition keys ever written
- {prefix}:sequence               ingestion sequence counter
- {prefix}:downsample:{collection} hash, field = row key, value = JSON row

Note: redis-py's type stubs use a generic ResponseT that supports both sync
and async interfaces. We use the synchronous interface only, so the client is
typed as Any.
"""

import json
import logging
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional

import redis

from gridseries.errors import StoreUnavailableError
from gridseries.models.queries import RangeFilter
from gridseries.models.readings import PartitionKey, Reading
from gridseries.utils.timestamps import to_epoch


logger = logging.getLogger(__name__)

UNAVAILABLE_ERRORS = (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError)


@contextmanager
def _unavailable_on_connection_error(operation: str) -> Iterator[None]:
    """Translate Redis connectivity failures into StoreUnavailableError."""
    try:
        yield
    except UNAVAILABLE_ERRORS as error:
        raise StoreUnavailableError(f"{operation} failed: {error}") from error


def _safe_url(redis_url: str) -> str:
    """Return URL with password masked for logging."""
    if "@" in redis_url:
        return f"***@{redis_url.split('@')[-1]}"
    return redis_url


def connect(redis_url: str) -> Any:
    """
    Create a Redis client and verify the connection.

    Raises:
        StoreUnavailableError: If Redis cannot be reached
    """
    client: Any = redis.from_url(redis_url, decode_responses=True)
    with _unavailable_on_connection_error(f"Connecting to Redis at {_safe_url(redis_url)}"):
        client.ping()
    logger.info(f"[OK] Connected to Redis at {_safe_url(redis_url)}")
    return client


class RedisReadingStore:
    """
    Ordered reading store on Redis sorted sets, one set per partition.

    Range reads for all partitions run in a single MULTI/EXEC pipeline, so an
    aggregator sees one point-in-time view even while sweeps and appends run.
    """

    def __init__(self, client: Any, key_prefix: str = "gridseries"):
        self.client = client
        self.key_prefix = key_prefix

    @property
    def partitions_key(self) -> str:
        return f"{self.key_prefix}:partitions"

    @property
    def sequence_key(self) -> str:
        return f"{self.key_prefix}:sequence"

    def readings_key(self, partition: PartitionKey) -> str:
        return f"{self.key_prefix}:readings:{partition}"

    def append(self, reading: Reading) -> Reading:
        """
        Append a reading and assign its ingestion sequence number.

        Returns:
            The stored reading (with sequence set)
        """
        with _unavailable_on_connection_error("Appending reading"):
            sequence = int(self.client.incr(self.sequence_key))
            stored = replace(reading, sequence=sequence)
            partition = stored.partition_key()
            member = json.dumps(stored.to_dict(), sort_keys=True)

            pipe = self.client.pipeline(transaction=True)
            pipe.sadd(self.partitions_key, str(partition))
            pipe.zadd(self.readings_key(partition), {member: stored.epoch})
            pipe.execute()
        return stored

    def _partition_names(self) -> List[str]:
        return sorted(self.client.smembers(self.partitions_key))

    def snapshot(self, range_filter: Optional[RangeFilter] = None) -> List[Reading]:
        """
        Point-in-time copy of all readings matching the filter.

        Returns:
            Readings ordered by partition, then (timestamp, sequence)
        """
        lower: Any = "-inf"
        upper: Any = "+inf"
        if range_filter is not None and range_filter.lower is not None:
            lower = to_epoch(range_filter.lower)
        if range_filter is not None and range_filter.upper is not None:
            upper = to_epoch(range_filter.upper)

        with _unavailable_on_connection_error("Reading snapshot"):
            names = self._partition_names()
            if not names:
                return []
            pipe = self.client.pipeline(transaction=True)
            for name in names:
                pipe.zrangebyscore(f"{self.key_prefix}:readings:{name}", lower, upper)
            raw_partitions = pipe.execute()

        result: List[Reading] = []
        for members in raw_partitions:
            readings = [Reading.from_dict(json.loads(member)) for member in members]
            if range_filter is not None:
                readings = [reading for reading in readings if range_filter.matches(reading)]
            readings.sort(key=lambda reading: reading.sort_key)
            result.extend(readings)
        return result

    def delete_older_than(self, cutoff: datetime) -> int:
        """
        Remove every reading with timestamp strictly before cutoff.

        Partitions left empty are dropped from the partition index.

        Returns:
            Number of readings removed
        """
        # "(" makes the upper score bound exclusive
        upper = f"({to_epoch(cutoff)}"
        with _unavailable_on_connection_error("Deleting expired readings"):
            names = self._partition_names()
            if not names:
                return 0
            pipe = self.client.pipeline(transaction=True)
            for name in names:
                pipe.zremrangebyscore(f"{self.key_prefix}:readings:{name}", "-inf", upper)
            removed = sum(int(count) for count in pipe.execute())

            pipe = self.client.pipeline(transaction=False)
            for name in names:
                pipe.zcard(f"{self.key_prefix}:readings:{name}")
            empty = [name for name, count in zip(names, pipe.execute()) if int(count) == 0]
            for name in empty:
                self._drop_if_empty(name)

        if removed > 0:
            logger.debug(f"Pruned {removed} expired readings across {len(names)} partitions")
        if empty:
            logger.debug(f"Dropped {len(empty)} empty partitions from the index")
        return removed

    def _drop_if_empty(self, name: str) -> None:
        """
        Remove a partition from the index if its sorted set is still empty.

        Runs under WATCH on the sorted set; an append landing in between
        makes redis-py retry, and the retry sees the new reading.
        """
        readings_key = f"{self.key_prefix}:readings:{name}"

        def remove(pipe: Any) -> None:
            if int(pipe.zcard(readings_key)) == 0:
                pipe.multi()
                pipe.srem(self.partitions_key, name)

        self.client.transaction(remove, readings_key)

    def partitions(self) -> List[PartitionKey]:
        """List the partitions currently holding readings."""
        with _unavailable_on_connection_error("Listing partitions"):
            names = self._partition_names()
            pipe = self.client.pipeline(transaction=False)
            for name in names:
                pipe.zcard(f"{self.key_prefix}:readings:{name}")
            counts = pipe.execute() if names else []
        return [PartitionKey.parse(name) for name, count in zip(names, counts) if int(count) > 0]

    def count(self) -> int:
        """Total number of stored readings."""
        with _unavailable_on_connection_error("Counting readings"):
            names = self._partition_names()
            if not names:
                return 0
            pipe = self.client.pipeline(transaction=False)
            for name in names:
                pipe.zcard(f"{self.key_prefix}:readings:{name}")
            return sum(int(count) for count in pipe.execute())

    def clear(self) -> None:
        """Delete every reading, partition and the sequence counter."""
        with _unavailable_on_connection_error("Clearing readings"):
            names = self._partition_names()
            keys = [f"{self.key_prefix}:readings:{name}" for name in names]
            self.client.delete(self.partitions_key, self.sequence_key, *keys)

    def close(self) -> None:
        """Close the Redis connection."""
        try:
            self.client.close()
            logger.debug("Redis connection closed")
        except UNAVAILABLE_ERRORS as error:
            logger.debug(f"Ignoring error while closing Redis connection: {error}")


class RedisDownsampleStore:
    """
    Downsample store on Redis hashes, one hash per destination collection.

    HSET overwrites a field in full, which gives replace-on-conflict writes.
    """

    def __init__(self, client: Any, key_prefix: str = "gridseries"):
        self.client = client
        self.key_prefix = key_prefix

    def collection_key(self, collection: str) -> str:
        return f"{self.key_prefix}:downsample:{collection}"

    def upsert_many(self, collection: str, rows: Mapping[str, Dict[str, Any]]) -> int:
        """
        Replace or insert rows by key.

        Returns:
            Number of rows written
        """
        if not rows:
            return 0
        mapping = {key: json.dumps(row, sort_keys=True) for key, row in rows.items()}
        with _unavailable_on_connection_error(f"Writing to {collection}"):
            self.client.hset(self.collection_key(collection), mapping=mapping)
        return len(mapping)

    def get_all(self, collection: str) -> Dict[str, Dict[str, Any]]:
        """Every row in a collection, keyed by row key."""
        with _unavailable_on_connection_error(f"Reading {collection}"):
            raw = self.client.hgetall(self.collection_key(collection))
        return {key: json.loads(value) for key, value in raw.items()}

    def clear(self, collection: str) -> None:
        with _unavailable_on_connection_error(f"Clearing {collection}"):
            self.client.delete(self.collection_key(collection))

    def close(self) -> None:
        try:
            self.client.close()
        except UNAVAILABLE_ERRORS as error:
            logger.debug(f"Ignoring error while closing Redis connection: {error}")
