"""
GridSeries - Model Tests

Unit tests for readings, partition keys, query parameters and collection
configuration.
"""

import unittest
from datetime import datetime, timedelta, timezone

from gridseries.errors import InvalidRangeError, ValidationError
from gridseries.models import (
    BucketSpec,
    CollectionConfig,
    Granularity,
    MergeTarget,
    PartitionKey,
    RangeFilter,
    Reading,
    RollingWindowSpec,
    WindowUnit
)
from gridseries.utils.timestamps import format_timestamp, parse_timestamp


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestPartitionKey(unittest.TestCase):
    """Test cases for PartitionKey."""

    def test_independent_of_metadata_order(self):
        first = PartitionKey.from_metadata({"type": "business", "region": "west"})
        second = PartitionKey.from_metadata({"region": "west", "type": "business"})

        self.assertEqual(first, second)
        self.assertEqual(hash(first), hash(second))

    def test_string_round_trip(self):
        key = PartitionKey.from_metadata({"region": "west", "type": "business"})

        self.assertEqual(str(key), "region=west|type=business")
        self.assertEqual(PartitionKey.parse(str(key)), key)

    def test_separators_in_values_round_trip(self):
        key = PartitionKey.from_metadata({"region": "north|east", "type": "a=b%c"})

        self.assertEqual(str(key), "region=north%7Ceast|type=a%3Db%25c")
        self.assertEqual(PartitionKey.parse(str(key)), key)
        self.assertEqual(PartitionKey.parse(str(key)).as_dict()["type"], "a=b%c")

    def test_subset_of_fields(self):
        key = PartitionKey.from_metadata({"region": "west", "type": "business"}, ["region"])
        self.assertEqual(key.as_dict(), {"region": "west"})


class TestReading(unittest.TestCase):
    """Test cases for Reading."""

    def test_dict_round_trip(self):
        reading = Reading(BASE_TIME, {"region": "north", "type": "public"}, 4.5, sequence=9)

        self.assertEqual(Reading.from_dict(reading.to_dict()), reading)

    def test_sort_key_breaks_ties_by_sequence(self):
        early = Reading(BASE_TIME, {}, 1.0, sequence=1)
        late = Reading(BASE_TIME, {}, 1.0, sequence=2)

        self.assertLess(early.sort_key, late.sort_key)


class TestRangeFilter(unittest.TestCase):
    """Test cases for RangeFilter."""

    def test_bounds_are_inclusive(self):
        range_filter = RangeFilter(lower=BASE_TIME, upper=BASE_TIME + timedelta(hours=1))

        self.assertTrue(range_filter.matches(Reading(BASE_TIME, {}, 1.0)))
        self.assertTrue(range_filter.matches(Reading(BASE_TIME + timedelta(hours=1), {}, 1.0)))
        self.assertFalse(range_filter.matches(Reading(BASE_TIME + timedelta(hours=2), {}, 1.0)))

    def test_lower_after_upper_rejected(self):
        with self.assertRaises(InvalidRangeError):
            RangeFilter(lower=BASE_TIME + timedelta(seconds=1), upper=BASE_TIME)

    def test_invalid_range_is_a_validation_error(self):
        self.assertTrue(issubclass(InvalidRangeError, ValidationError))

    def test_equal_bounds_allowed(self):
        range_filter = RangeFilter(lower=BASE_TIME, upper=BASE_TIME)
        self.assertTrue(range_filter.matches(Reading(BASE_TIME, {}, 1.0)))

    def test_naive_bounds_taken_as_utc(self):
        range_filter = RangeFilter(lower=datetime(2024, 1, 1))
        self.assertEqual(range_filter.lower, BASE_TIME)

    def test_describe(self):
        range_filter = RangeFilter(upper=BASE_TIME, metadata={"region": "north"})
        self.assertEqual(
            range_filter.describe(),
            "[-inf, 2024-01-01T00:00:00Z] where {'region': 'north'}"
        )


class TestWindowSpecs(unittest.TestCase):
    """Test cases for RollingWindowSpec, BucketSpec and MergeTarget."""

    def test_count_window_clause(self):
        self.assertEqual(RollingWindowSpec.count(20).to_dict(), {"documents": [-20, 0]})

    def test_range_window_clause(self):
        spec = RollingWindowSpec.duration(2, unit="hours")

        self.assertEqual(spec.unit, WindowUnit.HOURS)
        self.assertEqual(spec.lookback, timedelta(hours=2))
        self.assertEqual(spec.to_dict(), {"range": [-2, 0], "unit": "hours"})

    def test_needs_exactly_one_mode(self):
        with self.assertRaises(ValidationError):
            RollingWindowSpec()
        with self.assertRaises(ValidationError):
            RollingWindowSpec(count_before=1, duration_before=1)

    def test_negative_window_rejected(self):
        with self.assertRaises(ValidationError):
            RollingWindowSpec.count(-1)
        with self.assertRaises(ValidationError):
            RollingWindowSpec.duration(10, after=-1)

    def test_non_integer_counts_rejected(self):
        for before, after in ((1.5, 0), (True, 0), ("3", 0), (2, 0.5), (2, False)):
            with self.subTest(before=before, after=after):
                with self.assertRaises(ValidationError):
                    RollingWindowSpec.count(before, after=after)

    def test_non_numeric_durations_rejected(self):
        with self.assertRaises(ValidationError) as context:
            RollingWindowSpec.duration("60")
        self.assertEqual(context.exception.field, "duration_before")
        with self.assertRaises(ValidationError):
            RollingWindowSpec.duration(True)

    def test_fractional_duration_allowed(self):
        self.assertEqual(RollingWindowSpec.duration(1.5).lookback, timedelta(seconds=1.5))

    def test_unknown_unit_rejected(self):
        with self.assertRaises(ValidationError):
            RollingWindowSpec.duration(1, unit="fortnights")

    def test_bucket_count_must_be_positive(self):
        self.assertEqual(BucketSpec().bucket_count, 24)
        with self.assertRaises(ValidationError):
            BucketSpec(0)

    def test_bucket_count_must_be_integer(self):
        for bad_count in (2.0, True, "24"):
            with self.subTest(bucket_count=bad_count):
                with self.assertRaises(ValidationError) as context:
                    BucketSpec(bad_count)
                self.assertEqual(context.exception.field, "bucket_count")

    def test_merge_target_validation(self):
        with self.assertRaises(ValidationError):
            MergeTarget("")
        with self.assertRaises(ValidationError):
            MergeTarget("rollups", conflict_policy="keep_existing")


class TestCollectionConfig(unittest.TestCase):
    """Test cases for CollectionConfig."""

    def test_options_document(self):
        config = CollectionConfig(granularity="hours", expire_after_seconds=86400)

        self.assertEqual(config.granularity, Granularity.HOURS)
        self.assertEqual(config.to_dict(), {
            "timeField": "timestamp",
            "metaField": "metadata",
            "granularity": "hours",
            "expireAfterSeconds": 86400
        })

    def test_fields_must_differ(self):
        with self.assertRaises(ValueError):
            CollectionConfig(time_field="value")

    def test_expiry_must_be_positive(self):
        with self.assertRaises(ValueError):
            CollectionConfig(expire_after_seconds=0)


class TestTimestamps(unittest.TestCase):
    """Test cases for timestamp helpers."""

    def test_parse_z_suffix(self):
        self.assertEqual(parse_timestamp("2024-01-01T00:00:00Z"), BASE_TIME)

    def test_format_uses_z_suffix(self):
        self.assertEqual(format_timestamp(BASE_TIME), "2024-01-01T00:00:00Z")

    def test_parse_rejects_non_strings(self):
        with self.assertRaises(ValueError):
            parse_timestamp(12345)


if __name__ == "__main__":
    unittest.main()
