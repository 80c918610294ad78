"""
GridSeries - Window Aggregator

Computes rolling averages and fixed-bucket downsamples per partition.
Organized into focused classes:
- AggregateCalculator: shared grouping, ordering and averaging helpers
- RollingWindowAggregator: count and time windows, one result per reading
- BucketAggregator: equal-width buckets, one result per bucket and partition
- WindowAggregator: facade used by the pipeline
"""

import logging
import os
import statistics
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from gridseries.errors import AggregationCancelledError, EmptyInputError
from gridseries.models.queries import BucketSpec, RollingWindowSpec
from gridseries.models.readings import (
    BucketResult,
    PartitionKey,
    PartitionSummary,
    Reading,
    WindowResult
)
from gridseries.utils.config import AggregationConfig
from gridseries.utils.performance import timed


logger = logging.getLogger(__name__)

# Worker threads for parallel partition processing
CPU_COUNT = min(os.cpu_count() or 4, 8)

# Readings processed between cancellation checks inside one partition
CANCEL_CHECK_INTERVAL = 1024

ResultT = TypeVar("ResultT")
PartitionWorker = Callable[[PartitionKey, List[Reading], Optional[threading.Event]], List[ResultT]]


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise AggregationCancelledError("Aggregation cancelled")


def _microseconds(delta: timedelta) -> int:
    """Exact length of a timedelta in microseconds."""
    return (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds


class AggregateCalculator:
    """
    Helper class for aggregate calculation operations.

    Provides shared calculation methods for aggregators.
    """

    @staticmethod
    def mean(values: Sequence[float]) -> float:
        """Floating-point mean over a fixed ordered sequence."""
        return statistics.fmean(values)

    @staticmethod
    def require_readings(readings: Sequence[Reading], operation: str) -> None:
        """
        Raises:
            EmptyInputError: If there is nothing to aggregate
        """
        if not readings:
            raise EmptyInputError(f"No readings matched the {operation} request")

    @staticmethod
    def group_by_partition(
        readings: Sequence[Reading],
        partition_by: Optional[Sequence[str]] = None
    ) -> Dict[PartitionKey, List[Reading]]:
        """
        Group readings by partition and sort each group.

        Each group is ordered by (timestamp, sequence): the store may hand
        out readings in any order, the aggregator never relies on it.
        """
        grouped: Dict[PartitionKey, List[Reading]] = defaultdict(list)
        for reading in readings:
            grouped[reading.partition_key(partition_by)].append(reading)

        for group in grouped.values():
            group.sort(key=lambda reading: reading.sort_key)
        return dict(grouped)

    @staticmethod
    def run_partitions(
        groups: Dict[PartitionKey, List[Reading]],
        worker: PartitionWorker,
        cancel_event: Optional[threading.Event] = None,
        parallel: bool = False
    ) -> List[ResultT]:
        """
        Apply worker to every partition and concatenate results in partition order.

        Partitions share no state, so with parallel=True they run on a thread
        pool. On cancellation the results of partitions that finished are
        attached to the raised AggregationCancelledError.
        """
        keys = sorted(groups, key=str)
        completed: Dict[PartitionKey, List[ResultT]] = {}

        try:
            if parallel and len(keys) > 1:
                with ThreadPoolExecutor(max_workers=min(CPU_COUNT, len(keys))) as executor:
                    futures = {
                        executor.submit(worker, key, groups[key], cancel_event): key
                        for key in keys
                    }
                    for future in as_completed(futures):
                        completed[futures[future]] = future.result()
            else:
                for key in keys:
                    _check_cancelled(cancel_event)
                    completed[key] = worker(key, groups[key], cancel_event)
        except AggregationCancelledError:
            partial = [result for key in keys if key in completed for result in completed[key]]
            logger.warning(
                f"[WARN] Aggregation cancelled after {len(completed)}/{len(keys)} partitions"
            )
            raise AggregationCancelledError(
                f"Aggregation cancelled after {len(completed)} of {len(keys)} partitions",
                partial_results=partial
            )

        return [result for key in keys for result in completed[key]]


class RollingWindowAggregator:
    """
    Handles rolling window averages.

    Handles:
    - Count windows (the current reading and its N predecessors)
    - Time windows (all readings within a trailing duration)
    """

    def __init__(self):
        logger.debug("RollingWindowAggregator initialized")

    def count_window(
        self,
        partition_key: PartitionKey,
        ordered: List[Reading],
        spec: RollingWindowSpec,
        cancel_event: Optional[threading.Event] = None
    ) -> List[WindowResult]:
        """
        Mean over count_before preceding readings, the current one and
        count_after following ones. Windows near the partition edges shrink;
        nothing is padded.
        """
        before = spec.count_before or 0
        after = spec.count_after
        values = [reading.value for reading in ordered]
        total = len(values)
        results = []

        for index, reading in enumerate(ordered):
            if index % CANCEL_CHECK_INTERVAL == 0:
                _check_cancelled(cancel_event)
            window = values[max(0, index - before):min(total, index + after + 1)]
            results.append(WindowResult(
                partition_key=partition_key,
                timestamp=reading.timestamp,
                value=AggregateCalculator.mean(window),
                sample_count=len(window)
            ))

        return results

    def time_window(
        self,
        partition_key: PartitionKey,
        ordered: List[Reading],
        spec: RollingWindowSpec,
        cancel_event: Optional[threading.Event] = None
    ) -> List[WindowResult]:
        """
        Mean over all readings in [timestamp - lookback, timestamp + lookahead],
        both ends inclusive. Readings sharing the current timestamp are
        always inside the window.
        """
        lookback = spec.lookback
        lookahead = spec.lookahead
        timestamps = [reading.timestamp for reading in ordered]
        values = [reading.value for reading in ordered]
        total = len(values)
        results = []
        low = 0
        high = 0

        for index, reading in enumerate(ordered):
            if index % CANCEL_CHECK_INTERVAL == 0:
                _check_cancelled(cancel_event)

            window_start = reading.timestamp - lookback
            window_end = reading.timestamp + lookahead
            while timestamps[low] < window_start:
                low += 1
            while high < total and timestamps[high] <= window_end:
                high += 1

            window = values[low:high]
            results.append(WindowResult(
                partition_key=partition_key,
                timestamp=reading.timestamp,
                value=AggregateCalculator.mean(window),
                sample_count=len(window)
            ))

        return results

    def calculate(
        self,
        partition_key: PartitionKey,
        ordered: List[Reading],
        spec: RollingWindowSpec,
        cancel_event: Optional[threading.Event] = None
    ) -> List[WindowResult]:
        """Dispatch to the count or time window for one sorted partition."""
        if spec.is_count_window:
            return self.count_window(partition_key, ordered, spec, cancel_event)
        return self.time_window(partition_key, ordered, spec, cancel_event)


class BucketAggregator:
    """
    Handles fixed-bucket downsampling.

    Bucket boundaries come from the min/max timestamp of the whole input
    set, so every partition shares the same buckets.
    """

    def __init__(self):
        logger.debug("BucketAggregator initialized")

    @staticmethod
    def bucket_bounds(readings: Sequence[Reading]) -> Tuple[datetime, datetime]:
        """
        Compute the shared range of the input.

        Returns:
            (range start, range end)
        """
        start = min(reading.timestamp for reading in readings)
        end = max(reading.timestamp for reading in readings)
        return start, end

    @staticmethod
    def bucket_index(timestamp: datetime, start: datetime, end: datetime, bucket_count: int) -> int:
        """
        Index of the half-open bucket holding timestamp; the range end goes to the last bucket.

        Computed in whole microseconds, so a range shorter than
        bucket_count microseconds still spreads over the buckets.
        """
        span = _microseconds(end - start)
        if span <= 0:
            return 0
        return min(_microseconds(timestamp - start) * bucket_count // span, bucket_count - 1)

    @staticmethod
    def bucket_edge(start: datetime, end: datetime, index: int, bucket_count: int) -> datetime:
        """Lower edge of bucket index (rounded to the microsecond)."""
        return start + (end - start) * index / bucket_count

    def downsample_partition(
        self,
        partition_key: PartitionKey,
        ordered: List[Reading],
        bounds: Tuple[datetime, datetime],
        bucket_count: int,
        cancel_event: Optional[threading.Event] = None
    ) -> List[BucketResult]:
        """Average each non-empty bucket of one sorted partition."""
        start, end = bounds
        buckets: Dict[int, List[Reading]] = defaultdict(list)

        for position, reading in enumerate(ordered):
            if position % CANCEL_CHECK_INTERVAL == 0:
                _check_cancelled(cancel_event)
            buckets[self.bucket_index(reading.timestamp, start, end, bucket_count)].append(reading)

        results = []
        for index in sorted(buckets):
            members = buckets[index]
            earliest = members[0]
            is_last = index == bucket_count - 1 or start == end
            results.append(BucketResult(
                partition_key=partition_key,
                bucket_index=index,
                bucket_start=self.bucket_edge(start, end, index, bucket_count),
                bucket_end=end if is_last else self.bucket_edge(start, end, index + 1, bucket_count),
                timestamp=earliest.timestamp,
                value=AggregateCalculator.mean([reading.value for reading in members]),
                sample_count=len(members),
                metadata=dict(earliest.metadata)
            ))

        return results


class WindowAggregator:
    """
    Facade class for windowed aggregation operations.

    Provides unified interface to RollingWindowAggregator and
    BucketAggregator, plus per-partition summaries.
    """

    def __init__(self, config: Optional[AggregationConfig] = None):
        """
        Initialize the window aggregator facade.

        Args:
            config: Aggregation defaults (window count, bucket count, parallelism)
        """
        self.config = config or AggregationConfig()
        self.rolling = RollingWindowAggregator()
        self.buckets = BucketAggregator()
        logger.debug("WindowAggregator initialized")

    @timed("aggregator.rolling_average")
    def rolling_average(
        self,
        readings: Sequence[Reading],
        spec: Optional[RollingWindowSpec] = None,
        partition_by: Optional[Sequence[str]] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> List[WindowResult]:
        """
        Rolling average for every reading, partition by partition.

        Args:
            readings: Input readings in any order
            spec: Window definition (default: count window of config.window_count)
            partition_by: Metadata fields to partition by (default: all)
            cancel_event: Set to stop between partitions

        Returns:
            One WindowResult per reading, ordered by partition then timestamp

        Raises:
            EmptyInputError: If readings is empty
            AggregationCancelledError: If cancel_event was set
        """
        AggregateCalculator.require_readings(readings, "rolling window")
        spec = spec or RollingWindowSpec.count(self.config.window_count)
        groups = AggregateCalculator.group_by_partition(readings, partition_by)

        logger.info(
            f"[...] Rolling average over {len(readings)} readings "
            f"in {len(groups)} partitions (window {spec.to_dict()})"
        )
        results = AggregateCalculator.run_partitions(
            groups,
            lambda key, ordered, event: self.rolling.calculate(key, ordered, spec, event),
            cancel_event,
            self.config.parallel
        )
        logger.info(f"[OK] Computed {len(results)} rolling window results")
        return results

    @timed("aggregator.downsample")
    def downsample(
        self,
        readings: Sequence[Reading],
        spec: Optional[BucketSpec] = None,
        partition_by: Optional[Sequence[str]] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> List[BucketResult]:
        """
        Downsample into equal-width buckets shared by all partitions.

        Returns:
            One BucketResult per non-empty (partition, bucket), ordered by
            partition then bucket index

        Raises:
            EmptyInputError: If readings is empty
            AggregationCancelledError: If cancel_event was set
        """
        AggregateCalculator.require_readings(readings, "downsample")
        spec = spec or BucketSpec(self.config.bucket_count)
        bounds = self.buckets.bucket_bounds(readings)
        groups = AggregateCalculator.group_by_partition(readings, partition_by)

        logger.info(
            f"[...] Downsampling {len(readings)} readings in {len(groups)} partitions "
            f"into {spec.bucket_count} buckets"
        )
        results = AggregateCalculator.run_partitions(
            groups,
            lambda key, ordered, event: self.buckets.downsample_partition(
                key, ordered, bounds, spec.bucket_count, event
            ),
            cancel_event,
            self.config.parallel
        )
        logger.info(f"[OK] Created {len(results)} bucket results")
        return results

    def summarize(
        self,
        readings: Sequence[Reading],
        partition_by: Optional[Sequence[str]] = None
    ) -> List[PartitionSummary]:
        """
        Count, mean, min and max per partition.

        Raises:
            EmptyInputError: If readings is empty
        """
        AggregateCalculator.require_readings(readings, "summary")
        groups = AggregateCalculator.group_by_partition(readings, partition_by)

        summaries = []
        for key in sorted(groups, key=str):
            ordered = groups[key]
            values = [reading.value for reading in ordered]
            summaries.append(PartitionSummary(
                partition_key=key,
                count=len(values),
                mean=AggregateCalculator.mean(values),
                minimum=min(values),
                maximum=max(values),
                first_timestamp=ordered[0].timestamp,
                last_timestamp=ordered[-1].timestamp
            ))
        return summaries
