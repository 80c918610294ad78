"""
GridSeries - Retention Sweeper

Purges readings older than the retention policy's maximum age.
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from gridseries.models.collection import RetentionPolicy
from gridseries.utils.config import OperationalConfig
from gridseries.utils.retry import execute_with_retry
from gridseries.utils.timestamps import ensure_utc, format_timestamp


logger = logging.getLogger(__name__)


class RetentionSweeper:
    """
    Age-based deletion against the ordered store.

    A reading is removed when its timestamp is strictly older than
    now - max_age_seconds. Sweeping twice with the same now removes nothing
    the second time, so failed sweeps are safe to retry.
    """

    def __init__(
        self,
        store,
        policy: RetentionPolicy,
        operational: Optional[OperationalConfig] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.store = store
        self.policy = policy
        self.operational = operational or OperationalConfig()
        self._sleep = sleep

    def cutoff(self, now: datetime) -> datetime:
        """Oldest timestamp that survives a sweep at now."""
        return ensure_utc(now) - timedelta(seconds=self.policy.max_age_seconds)

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Remove expired readings.

        Args:
            now: Sweep time (default: current UTC time)

        Returns:
            Number of readings removed

        Raises:
            StoreUnavailableError: If the store stays unreachable after retries
        """
        now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
        cutoff = self.cutoff(now)

        removed = execute_with_retry(
            "Retention sweep",
            self.store.delete_older_than,
            cutoff,
            max_retries=self.operational.max_retries,
            retry_delay=self.operational.retry_delay,
            sleep=self._sleep
        )

        if removed:
            logger.info(f"[OK] Swept {removed} readings older than {format_timestamp(cutoff)}")
        else:
            logger.debug(f"Nothing older than {format_timestamp(cutoff)} to sweep")
        return removed
