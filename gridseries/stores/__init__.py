"""
GridSeries - Stores Package

Ordered reading stores and downsample stores, in memory or on Redis.
"""

import logging
from typing import Any, Optional, Union

from gridseries.stores.memory_store import InMemoryDownsampleStore, InMemoryReadingStore
from gridseries.stores.redis_store import RedisDownsampleStore, RedisReadingStore, connect
from gridseries.utils.config import StoreConfig


logger = logging.getLogger(__name__)

ReadingStore = Union[InMemoryReadingStore, RedisReadingStore]
DownsampleStore = Union[InMemoryDownsampleStore, RedisDownsampleStore]


def get_reading_store(config: StoreConfig, client: Optional[Any] = None) -> ReadingStore:
    """
    Factory function to get the configured reading store.

    Args:
        config: Store configuration
        client: Optional existing Redis client to share

    Raises:
        StoreUnavailableError: If the Redis backend cannot be reached
    """
    if config.backend == "redis":
        return RedisReadingStore(client or connect(config.redis_url), config.key_prefix)
    logger.info("[INFO] Using in-memory reading store")
    return InMemoryReadingStore()


def get_downsample_store(config: StoreConfig, client: Optional[Any] = None) -> DownsampleStore:
    """Factory function to get the configured downsample store."""
    if config.backend == "redis":
        return RedisDownsampleStore(client or connect(config.redis_url), config.key_prefix)
    return InMemoryDownsampleStore()


__all__ = [
    "DownsampleStore",
    "InMemoryDownsampleStore",
    "InMemoryReadingStore",
    "ReadingStore",
    "RedisDownsampleStore",
    "RedisReadingStore",
    "connect",
    "get_downsample_store",
    "get_reading_store"
]
