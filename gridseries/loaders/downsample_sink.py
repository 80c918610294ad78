"""
GridSeries - Downsample Sink

Writes aggregator output to the secondary low-resolution store. Each result
replaces any prior row with the same (partition, bucket timestamp) key;
nothing is merged or accumulated, so repeated writes are idempotent.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from gridseries.models.queries import ConflictPolicy, MergeTarget
from gridseries.models.readings import BucketResult, WindowResult
from gridseries.utils.performance import timed


logger = logging.getLogger(__name__)

SinkResult = Union[WindowResult, BucketResult]


class DownsampleSink:
    """
    Replace-on-conflict writer for rollups.

    Only the downsample store is touched; the ordered reading store is
    never modified.
    """

    def __init__(self, store, target: MergeTarget):
        """
        Initialize the sink.

        Args:
            store: Downsample store (in-memory or Redis)
            target: Destination collection and conflict policy
        """
        if target.conflict_policy is not ConflictPolicy.REPLACE:
            raise ValueError(f"Unsupported conflict policy: {target.conflict_policy}")
        self.store = store
        self.target = target

    @timed("sink.write")
    def write(self, results: Sequence[SinkResult]) -> int:
        """
        Upsert results by key.

        When one batch holds several results for the same key, the last one
        wins, exactly as if they had been written one by one.

        Returns:
            Number of distinct keys written
        """
        rows: Dict[str, Dict[str, Any]] = {}
        for result in results:
            rows[result.sink_key] = result.to_dict()

        if not rows:
            logger.debug(f"No results to write to {self.target.collection}")
            return 0

        written = self.store.upsert_many(self.target.collection, rows)
        logger.info(f"[OK] Wrote {written} rows to {self.target.collection}")
        return written

    def read_all(self, partition: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        """
        Stored rows sorted by key, optionally limited to one partition.

        Args:
            partition: Partition metadata to match exactly
        """
        rows = self.store.get_all(self.target.collection)
        selected = []
        for key in sorted(rows):
            row = rows[key]
            if partition is not None and row.get("partition") != partition:
                continue
            selected.append(row)
        return selected

    def clear(self) -> None:
        """Drop every row in the destination collection."""
        self.store.clear(self.target.collection)
        logger.info(f"[OK] Cleared {self.target.collection}")
