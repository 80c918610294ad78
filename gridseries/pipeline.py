"""
GridSeries - Rollup Pipeline

Wires the stages together: snapshot read of the ordered store, range and
metadata filter, partitioned window or bucket aggregation, replace-write to
the downsample sink.
"""

import logging
import threading
from typing import List, Optional, Sequence

from gridseries.aggregators.window_aggregator import WindowAggregator
from gridseries.errors import AggregationCancelledError
from gridseries.loaders.downsample_sink import DownsampleSink
from gridseries.models.queries import BucketSpec, MergeTarget, RangeFilter, RollingWindowSpec
from gridseries.models.readings import BucketResult, PartitionSummary, Reading, WindowResult
from gridseries.stores import get_downsample_store, get_reading_store
from gridseries.utils.config import Config


logger = logging.getLogger(__name__)


class RollupPipeline:
    """
    Filter -> partition -> window/bucket -> replace-write.

    Every run aggregates over one point-in-time snapshot of the store, so
    concurrent ingestion and sweeps never change a run's input midway.
    """

    def __init__(
        self,
        store,
        sink: DownsampleSink,
        aggregator: Optional[WindowAggregator] = None
    ):
        self.store = store
        self.sink = sink
        self.aggregator = aggregator or WindowAggregator()

    def read(self, range_filter: Optional[RangeFilter] = None) -> List[Reading]:
        """Snapshot of the readings matching range_filter."""
        readings = self.store.snapshot(range_filter)
        logger.debug(
            f"Snapshot holds {len(readings)} readings for "
            f"{range_filter.describe() if range_filter else 'all time'}"
        )
        return readings

    def run_rolling(
        self,
        spec: Optional[RollingWindowSpec] = None,
        range_filter: Optional[RangeFilter] = None,
        partition_by: Optional[Sequence[str]] = None,
        cancel_event: Optional[threading.Event] = None,
        write: bool = False
    ) -> List[WindowResult]:
        """
        Rolling averages over the filtered readings.

        Args:
            spec: Window definition (default: the aggregator's count window)
            range_filter: Timestamp range and metadata match
            partition_by: Metadata fields to partition by
            cancel_event: Set to stop the run
            write: Also write the results to the sink

        Raises:
            EmptyInputError: If nothing matches range_filter
            AggregationCancelledError: If cancelled (finished partitions are
                written when write is set)
        """
        readings = self.read(range_filter)
        try:
            results = self.aggregator.rolling_average(readings, spec, partition_by, cancel_event)
        except AggregationCancelledError as error:
            if write and error.partial_results:
                self.sink.write(error.partial_results)
            raise

        if write:
            self.sink.write(results)
        return results

    def run_downsample(
        self,
        spec: Optional[BucketSpec] = None,
        range_filter: Optional[RangeFilter] = None,
        partition_by: Optional[Sequence[str]] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> List[BucketResult]:
        """
        Downsample the filtered readings and write the buckets to the sink.

        On cancellation only the buckets of partitions that finished are
        written; unfinished partitions leave the sink untouched.

        Raises:
            EmptyInputError: If nothing matches range_filter
            AggregationCancelledError: If cancelled
        """
        readings = self.read(range_filter)
        try:
            results = self.aggregator.downsample(readings, spec, partition_by, cancel_event)
        except AggregationCancelledError as error:
            if error.partial_results:
                self.sink.write(error.partial_results)
            raise

        self.sink.write(results)
        return results

    def summarize(
        self,
        range_filter: Optional[RangeFilter] = None,
        partition_by: Optional[Sequence[str]] = None
    ) -> List[PartitionSummary]:
        """Per-partition count, mean, min and max of the filtered readings."""
        return self.aggregator.summarize(self.read(range_filter), partition_by)


def build_pipeline(config: Config, store=None, downsample_store=None) -> RollupPipeline:
    """
    Build a pipeline from configuration.

    Args:
        config: Application configuration
        store: Existing reading store to use instead of the configured one
        downsample_store: Existing downsample store to use instead of the configured one
    """
    store = store if store is not None else get_reading_store(config.store)
    downsample_store = (
        downsample_store if downsample_store is not None
        else get_downsample_store(config.store)
    )
    sink = DownsampleSink(downsample_store, MergeTarget(config.aggregation.downsample_collection))
    return RollupPipeline(store, sink, WindowAggregator(config.aggregation))
