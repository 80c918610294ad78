"""
GridSeries - Main Entry Point

Command line entry point for importing readings, running rollups, sweeping
expired data and generating sample documents.
"""

import argparse
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, TextIO

from gridseries.errors import EmptyInputError, GridSeriesError
from gridseries.ingest.ingestor import Ingestor
from gridseries.ingest.json_loader import load_documents, write_ndjson
from gridseries.ingest.sample_data import TimeSpec, generate_documents
from gridseries.models.collection import RetentionPolicy
from gridseries.models.queries import BucketSpec, RangeFilter, RollingWindowSpec
from gridseries.pipeline import build_pipeline
from gridseries.retention.sweeper import RetentionSweeper
from gridseries.utils.config import Config
from gridseries.utils.logging_config import setup_logging
from gridseries.utils.performance import format_perf_report
from gridseries.utils.timestamps import parse_timestamp


logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed argument namespace
    """
    parser = argparse.ArgumentParser(
        description="GridSeries - Power Utilities Time-Series Rollups",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate a day of 15-minute sample readings
  python -m gridseries.main --generate 96 --output readings.ndjson

  # Import and downsample into 24 buckets
  python -m gridseries.main --import readings.ndjson --downsample --buckets 24

  # 20-reading rolling average per region
  python -m gridseries.main --import readings.ndjson --rolling count --window 20 --partition-by region

  # One-hour rolling average within a range
  python -m gridseries.main --import readings.ndjson --rolling time --window 3600 \\
      --start 2024-01-01T06:00:00Z --end 2024-01-01T18:00:00Z

  # Purge readings older than the configured retention (Redis backend)
  python -m gridseries.main --sweep --max-age 86400
        """
    )

    parser.add_argument(
        "--import",
        dest="import_file",
        type=Path,
        help="JSON or NDJSON file of documents to ingest first"
    )

    # Operations (mutually exclusive)
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--rolling",
        choices=["count", "time"],
        help="Compute rolling averages with a count or time window"
    )
    mode_group.add_argument(
        "--downsample",
        action="store_true",
        help="Downsample into fixed buckets and write to the downsample collection"
    )
    mode_group.add_argument(
        "--summary",
        action="store_true",
        help="Print count/mean/min/max per partition"
    )
    mode_group.add_argument(
        "--sweep",
        action="store_true",
        help="Remove readings older than the retention age"
    )
    mode_group.add_argument(
        "--generate",
        type=int,
        metavar="N",
        help="Write N timestamps of sample documents per series and exit"
    )

    # Query options
    parser.add_argument("--start", type=str, help="Inclusive lower bound (ISO 8601)")
    parser.add_argument("--end", type=str, help="Inclusive upper bound (ISO 8601)")
    parser.add_argument(
        "--partition-by",
        action="append",
        metavar="FIELD",
        help="Metadata field to partition by (repeatable, default: all fields)"
    )
    parser.add_argument(
        "--match",
        action="append",
        metavar="FIELD=VALUE",
        help="Only use readings whose metadata FIELD equals VALUE (repeatable)"
    )
    parser.add_argument(
        "--window",
        type=float,
        help="Readings before the current one (count) or seconds of lookback (time)"
    )
    parser.add_argument("--buckets", type=int, help="Number of downsample buckets")
    parser.add_argument("--write", action="store_true", help="Also write rolling results to the sink")
    parser.add_argument("--max-age", type=int, help="Retention age in seconds for --sweep")
    parser.add_argument("--now", type=str, help="Sweep time (ISO 8601, default: now)")
    parser.add_argument("--seed", type=int, help="Random seed for --generate")

    # Output options
    parser.add_argument("--output", "-o", type=Path, help="Write NDJSON results to this file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args(argv)

    has_operation = args.rolling or args.downsample or args.summary or args.sweep or args.generate is not None
    if not has_operation and args.import_file is None:
        parser.error("nothing to do: give --import and/or an operation")
    return args


def build_range_filter(args: argparse.Namespace) -> Optional[RangeFilter]:
    """
    Build the range filter from --start/--end/--match.

    Raises:
        InvalidRangeError: If start is after end
        ValueError: If a bound or match is malformed
    """
    metadata: Dict[str, str] = {}
    for item in args.match or []:
        name, separator, value = item.partition("=")
        if not separator or not name:
            raise ValueError(f"--match expects FIELD=VALUE, got {item!r}")
        metadata[name] = value

    if not (args.start or args.end or metadata):
        return None

    return RangeFilter(
        lower=parse_timestamp(args.start) if args.start else None,
        upper=parse_timestamp(args.end) if args.end else None,
        metadata=metadata
    )


@contextmanager
def open_output(path: Optional[Path]) -> Iterator[TextIO]:
    """Yield the output stream: the given file, or stdout."""
    if path is None:
        yield sys.stdout
        return
    with path.open("w", encoding="utf-8") as stream:
        yield stream


def emit(rows: Iterable[Dict[str, Any]], path: Optional[Path]) -> int:
    with open_output(path) as stream:
        return write_ndjson(rows, stream)


def run_import(ingestor: Ingestor, path: Path) -> bool:
    """
    Ingest every document of a JSON or NDJSON file.

    Returns:
        True if at least one document was accepted
    """
    summary = ingestor.ingest_documents(load_documents(path))
    for index, error in summary.rejected[:10]:
        logger.warning(f"[WARN] Document {index} rejected: {error}")
    if summary.rejected_count > 10:
        logger.warning(f"[WARN] ... and {summary.rejected_count - 10} more rejected documents")
    return summary.accepted > 0


def run_generate(config: Config, args: argparse.Namespace) -> bool:
    """Write sample documents."""
    times = None
    if args.start:
        times = TimeSpec(start=parse_timestamp(args.start), step=timedelta(minutes=15))
    documents = generate_documents(
        count=args.generate,
        times=times,
        collection=config.collection,
        seed=args.seed
    )
    written = emit(documents, args.output)
    logger.info(f"[OK] Generated {written} sample documents")
    return True


def run_sweep(sweeper: RetentionSweeper, now: Optional[datetime]) -> bool:
    removed = sweeper.sweep(now)
    logger.info(f"[OK] Retention sweep removed {removed} readings")
    return True


def execute(config: Config, args: argparse.Namespace) -> bool:
    """
    Run the requested import and operation.

    Returns:
        True if the operation succeeded
    """
    if args.generate is not None:
        return run_generate(config, args)

    range_filter = build_range_filter(args)
    pipeline = build_pipeline(config)
    success = True

    if args.import_file is not None:
        ingestor = Ingestor(pipeline.store, config.collection, config.operational)
        success = run_import(ingestor, args.import_file)

    partition_by: Optional[List[str]] = args.partition_by

    if args.rolling == "count":
        window = int(args.window) if args.window is not None else config.aggregation.window_count
        results = pipeline.run_rolling(
            RollingWindowSpec.count(window), range_filter, partition_by, write=args.write
        )
        emit((result.to_dict() for result in results), args.output)

    elif args.rolling == "time":
        window = args.window if args.window is not None else config.aggregation.window_duration_seconds
        results = pipeline.run_rolling(
            RollingWindowSpec.duration(window), range_filter, partition_by, write=args.write
        )
        emit((result.to_dict() for result in results), args.output)

    elif args.downsample:
        bucket_count = args.buckets if args.buckets is not None else config.aggregation.bucket_count
        results = pipeline.run_downsample(BucketSpec(bucket_count), range_filter, partition_by)
        emit((result.to_dict() for result in results), args.output)

    elif args.summary:
        summaries = pipeline.summarize(range_filter, partition_by)
        emit((summary.to_dict() for summary in summaries), args.output)

    elif args.sweep:
        policy = RetentionPolicy(args.max_age) if args.max_age else config.retention_policy
        if policy is None:
            logger.error("[ERROR] No retention age: pass --max-age or set RETENTION_MAX_AGE_SECONDS")
            return False
        sweeper = RetentionSweeper(pipeline.store, policy, config.operational)
        success = run_sweep(sweeper, parse_timestamp(args.now) if args.now else None)

    return success


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for GridSeries.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    args = parse_arguments(argv)

    try:
        config = Config()
    except ValueError as error:
        setup_logging(log_dir=None)
        logger.error(f"[ERROR] Failed to load configuration: {error}")
        return 1

    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level=log_level, log_dir=config.log_dir)
    logger.info(f"GridSeries - Starting ({config.store.backend} store)")

    try:
        success = execute(config, args)

    except KeyboardInterrupt:
        logger.warning("[WARN] Operation interrupted by user")
        return 130

    except EmptyInputError as error:
        logger.warning(f"[WARN] {error}")
        return 1

    except (GridSeriesError, ValueError, OSError) as error:
        logger.error(f"[ERROR] Operation failed: {error}")
        return 1

    if args.verbose:
        logger.debug(format_perf_report())

    if success:
        logger.info("[DONE] GridSeries - Complete")
    else:
        logger.error("[ERROR] GridSeries - Failed")
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
