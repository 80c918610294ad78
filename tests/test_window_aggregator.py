"""
GridSeries - Window Aggregator Tests

Unit tests for rolling window and fixed-bucket aggregation logic.
"""

import threading
import unittest
from datetime import datetime, timedelta, timezone

from gridseries.aggregators.window_aggregator import (
    AggregateCalculator,
    BucketAggregator,
    WindowAggregator
)
from gridseries.errors import AggregationCancelledError, EmptyInputError
from gridseries.models.queries import BucketSpec, RollingWindowSpec, WindowUnit
from gridseries.models.readings import PartitionKey, Reading
from gridseries.utils.config import AggregationConfig


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_reading(seconds, value, region="north", customer_type="household", sequence=0):
    """Helper to create a test reading offset from BASE_TIME."""
    return Reading(
        timestamp=BASE_TIME + timedelta(seconds=seconds),
        metadata={"region": region, "type": customer_type},
        value=value,
        sequence=sequence
    )


class TestCountWindow(unittest.TestCase):
    """Test cases for count-based rolling averages."""

    def setUp(self):
        self.aggregator = WindowAggregator()

    def test_previous_plus_current_window(self):
        """N=1 averages each reading with the one before it."""
        readings = [make_reading(0, 10), make_reading(60, 20), make_reading(120, 30)]

        results = self.aggregator.rolling_average(readings, RollingWindowSpec.count(1))

        self.assertEqual([result.value for result in results], [10.0, 15.0, 25.0])
        self.assertEqual([result.sample_count for result in results], [1, 2, 2])

    def test_short_partition_is_not_padded(self):
        """Fewer than N prior readings averages only what exists."""
        readings = [make_reading(0, 10), make_reading(60, 20), make_reading(120, 60)]

        results = self.aggregator.rolling_average(readings, RollingWindowSpec.count(20))

        self.assertEqual([result.value for result in results], [10.0, 15.0, 30.0])
        self.assertEqual(results[-1].sample_count, 3)

    def test_default_window_is_twenty(self):
        """Without a spec the configured count of 20 is used."""
        readings = [make_reading(index * 60, float(index)) for index in range(30)]

        results = self.aggregator.rolling_average(readings)

        # Last window covers values 9..29
        self.assertEqual(results[-1].sample_count, 21)
        self.assertAlmostEqual(results[-1].value, 19.0)

    def test_output_aligned_with_sorted_input(self):
        """Out-of-order input yields results in timestamp order."""
        readings = [
            make_reading(120, 30),
            make_reading(0, 10),
            make_reading(240, 50),
            make_reading(60, 20),
        ]

        results = self.aggregator.rolling_average(readings, RollingWindowSpec.count(1))

        expected = sorted(reading.timestamp for reading in readings)
        self.assertEqual([result.timestamp for result in results], expected)
        self.assertEqual([result.value for result in results], [10.0, 15.0, 25.0, 40.0])

    def test_equal_timestamps_ordered_by_sequence(self):
        """Ties on timestamp fall back to ingestion order."""
        readings = [
            make_reading(0, 30, sequence=2),
            make_reading(0, 10, sequence=1),
        ]

        results = self.aggregator.rolling_average(readings, RollingWindowSpec.count(0))

        self.assertEqual([result.value for result in results], [10.0, 30.0])

    def test_count_after_includes_following_readings(self):
        """A centred window uses neighbours on both sides."""
        readings = [make_reading(index * 60, value) for index, value in enumerate([10, 20, 30, 40])]

        results = self.aggregator.rolling_average(readings, RollingWindowSpec.count(1, after=1))

        self.assertEqual([result.value for result in results], [15.0, 20.0, 30.0, 35.0])

    def test_partitions_are_independent(self):
        """Readings from other partitions never enter a window."""
        readings = [
            make_reading(0, 10, region="north"),
            make_reading(30, 1000, region="south"),
            make_reading(60, 20, region="north"),
        ]

        results = self.aggregator.rolling_average(readings, RollingWindowSpec.count(5))

        north = [result.value for result in results if result.partition_key.as_dict()["region"] == "north"]
        south = [result.value for result in results if result.partition_key.as_dict()["region"] == "south"]
        self.assertEqual(north, [10.0, 15.0])
        self.assertEqual(south, [1000.0])

    def test_partition_by_subset_of_metadata(self):
        """Partitioning by region merges customer types of that region."""
        readings = [
            make_reading(0, 10, customer_type="household"),
            make_reading(60, 30, customer_type="business"),
        ]

        results = self.aggregator.rolling_average(
            readings, RollingWindowSpec.count(1), partition_by=["region"]
        )

        self.assertEqual([result.value for result in results], [10.0, 20.0])
        self.assertEqual(results[0].partition_key, PartitionKey((("region", "north"),)))

    def test_empty_input_raises(self):
        with self.assertRaises(EmptyInputError):
            self.aggregator.rolling_average([], RollingWindowSpec.count(1))


class TestTimeWindow(unittest.TestCase):
    """Test cases for duration-based rolling averages."""

    def setUp(self):
        self.aggregator = WindowAggregator()

    def test_trailing_hour_window(self):
        """Readings older than the lookback drop out of the window."""
        readings = [
            make_reading(0, 10),
            make_reading(1800, 20),
            make_reading(3600, 30),
            make_reading(5400, 40),
        ]

        results = self.aggregator.rolling_average(readings, RollingWindowSpec.duration(1, unit=WindowUnit.HOURS))

        # t=3600 includes t=0 (boundary inclusive); t=5400 starts at t=1800
        self.assertEqual([result.value for result in results], [10.0, 15.0, 20.0, 30.0])
        self.assertEqual([result.sample_count for result in results], [1, 2, 3, 3])

    def test_window_boundary_is_inclusive(self):
        readings = [make_reading(0, 10), make_reading(60, 30)]

        results = self.aggregator.rolling_average(readings, RollingWindowSpec.duration(60))

        self.assertEqual(results[1].value, 20.0)

    def test_lookahead_window(self):
        readings = [make_reading(0, 10), make_reading(60, 30), make_reading(180, 50)]

        results = self.aggregator.rolling_average(readings, RollingWindowSpec.duration(0, after=60))

        self.assertEqual([result.value for result in results], [20.0, 30.0, 50.0])


class TestFixedBuckets(unittest.TestCase):
    """Test cases for fixed-bucket downsampling."""

    def setUp(self):
        self.aggregator = WindowAggregator()

    def test_two_buckets_over_range(self):
        """Each half of [0, 100] is averaged with its earliest timestamp kept."""
        readings = [
            make_reading(0, 10),
            make_reading(33, 20),
            make_reading(67, 30),
            make_reading(100, 40),
        ]

        results = self.aggregator.downsample(readings, BucketSpec(2))

        self.assertEqual(len(results), 2)
        self.assertEqual([result.value for result in results], [15.0, 35.0])
        self.assertEqual(results[0].timestamp, BASE_TIME)
        self.assertEqual(results[1].timestamp, BASE_TIME + timedelta(seconds=67))
        self.assertEqual(results[0].bucket_start, BASE_TIME)
        self.assertEqual(results[1].bucket_start, BASE_TIME + timedelta(seconds=50))
        self.assertEqual(results[1].bucket_end, BASE_TIME + timedelta(seconds=100))
        self.assertEqual(results[0].metadata, {"region": "north", "type": "household"})

    def test_boundary_reading_goes_to_upper_bucket(self):
        readings = [make_reading(0, 10), make_reading(50, 20), make_reading(100, 30)]

        results = self.aggregator.downsample(readings, BucketSpec(2))

        self.assertEqual([result.sample_count for result in results], [1, 2])

    def test_default_bucket_count_is_24(self):
        readings = [make_reading(hour * 3600, float(hour)) for hour in range(48)]

        results = self.aggregator.downsample(readings)

        self.assertEqual(len(results), 24)
        self.assertEqual(results[0].value, 0.5)

    def test_buckets_shared_across_partitions(self):
        """Bucket boundaries come from the whole input, not each partition."""
        readings = [
            make_reading(0, 10, region="north"),
            make_reading(100, 20, region="north"),
            make_reading(90, 50, region="south"),
        ]

        results = self.aggregator.downsample(readings, BucketSpec(2))

        south = [result for result in results if result.partition_key.as_dict()["region"] == "south"]
        self.assertEqual(len(south), 1)
        self.assertEqual(south[0].bucket_index, 1)
        self.assertEqual(south[0].bucket_start, BASE_TIME + timedelta(seconds=50))

    def test_identical_timestamps_fall_in_first_bucket(self):
        readings = [make_reading(0, 10), make_reading(0, 30)]

        results = self.aggregator.downsample(readings, BucketSpec(4))

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].bucket_index, 0)
        self.assertEqual(results[0].value, 20.0)

    def test_results_are_reproducible(self):
        readings = [make_reading(index * 7, index * 0.1) for index in range(200)]

        first = self.aggregator.downsample(readings, BucketSpec(9))
        second = self.aggregator.downsample(list(reversed(readings)), BucketSpec(9))

        self.assertEqual(first, second)

    def test_bucket_index_clamps_range_end(self):
        index = BucketAggregator.bucket_index(
            BASE_TIME + timedelta(seconds=100), BASE_TIME, BASE_TIME + timedelta(seconds=100), 4
        )
        self.assertEqual(index, 3)

    def test_sub_microsecond_width_still_spreads(self):
        """A range shorter than bucket_count microseconds keeps readings apart."""
        readings = [
            Reading(BASE_TIME, {"region": "north"}, 10.0),
            Reading(BASE_TIME + timedelta(microseconds=5), {"region": "north"}, 20.0),
            Reading(BASE_TIME + timedelta(microseconds=10), {"region": "north"}, 30.0),
        ]

        results = self.aggregator.downsample(readings, BucketSpec(24))

        self.assertEqual([result.bucket_index for result in results], [0, 12, 23])
        self.assertEqual([result.value for result in results], [10.0, 20.0, 30.0])

    def test_empty_input_raises(self):
        with self.assertRaises(EmptyInputError):
            self.aggregator.downsample([], BucketSpec(2))


class TestSummaryAndCancellation(unittest.TestCase):
    """Test cases for summaries, parallel runs and cancellation."""

    def test_summarize_per_partition(self):
        readings = [
            make_reading(0, 10, region="north"),
            make_reading(60, 30, region="north"),
            make_reading(0, 5, region="south"),
        ]

        summaries = WindowAggregator().summarize(readings, partition_by=["region"])

        self.assertEqual([summary.partition_key.as_dict()["region"] for summary in summaries], ["north", "south"])
        self.assertEqual(summaries[0].count, 2)
        self.assertEqual(summaries[0].mean, 20.0)
        self.assertEqual(summaries[0].minimum, 10.0)
        self.assertEqual(summaries[0].maximum, 30.0)
        self.assertEqual(summaries[0].last_timestamp, BASE_TIME + timedelta(seconds=60))

    def test_parallel_matches_sequential(self):
        readings = [
            make_reading(index * 60, float(index % 7), region=region)
            for index in range(50)
            for region in ("north", "south", "east", "west")
        ]

        sequential = WindowAggregator().rolling_average(readings, RollingWindowSpec.count(3))
        parallel = WindowAggregator(AggregationConfig(parallel=True)).rolling_average(
            readings, RollingWindowSpec.count(3)
        )

        self.assertEqual(sequential, parallel)

    def test_cancelled_before_start_returns_no_results(self):
        readings = [make_reading(0, 10), make_reading(60, 20)]
        cancel_event = threading.Event()
        cancel_event.set()

        with self.assertRaises(AggregationCancelledError) as context:
            WindowAggregator().downsample(readings, BucketSpec(2), cancel_event=cancel_event)

        self.assertEqual(context.exception.partial_results, [])

    def test_cancel_keeps_finished_partitions(self):
        """Partitions finished before the signal are reported as partial results."""
        readings = [
            make_reading(0, 10, region="a"),
            make_reading(0, 20, region="b"),
        ]
        cancel_event = threading.Event()
        calls = []

        def worker(key, ordered, event):
            calls.append(key)
            cancel_event.set()
            return [key]

        groups = AggregateCalculator.group_by_partition(readings)
        with self.assertRaises(AggregationCancelledError) as context:
            AggregateCalculator.run_partitions(groups, worker, cancel_event)

        self.assertEqual(len(calls), 1)
        self.assertEqual(context.exception.partial_results, calls)


if __name__ == "__main__":
    unittest.main()
