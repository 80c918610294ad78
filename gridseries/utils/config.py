"""
GridSeries - Configuration Management

This module handles loading and validating configuration from environment variables
and .env files. Every setting has a default so the pipeline runs with no
environment at all (in-memory stores).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from gridseries.models.collection import CollectionConfig, Granularity, RetentionPolicy
from gridseries.models.queries import DEFAULT_BUCKET_COUNT, DEFAULT_WINDOW_COUNT


STORE_BACKENDS = ("memory", "redis")


@dataclass
class StoreConfig:
    """Configuration for the reading and downsample stores."""
    backend: str = "memory"
    redis_url: str = "redis://localhost:6379"
    key_prefix: str = "gridseries"


@dataclass
class AggregationConfig:
    """Default aggregation parameters."""
    window_count: int = DEFAULT_WINDOW_COUNT
    window_duration_seconds: int = 3600
    bucket_count: int = DEFAULT_BUCKET_COUNT
    downsample_collection: str = "readings_downsampled"
    parallel: bool = False


@dataclass
class RetentionConfig:
    """Configuration for the retention sweeper."""
    max_age_seconds: Optional[int] = None
    sweep_interval_seconds: int = 300


@dataclass
class OperationalConfig:
    """Configuration for operational parameters."""
    max_retries: int = 3
    retry_delay: float = 1.0


@dataclass
class Config:
    """
    Main configuration class that aggregates all configuration sections.

    Loads configuration from environment variables with .env file support.
    Real environment variables take precedence over the .env file.
    """
    store: StoreConfig = field(default_factory=StoreConfig)
    collection: CollectionConfig = field(default_factory=CollectionConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    operational: OperationalConfig = field(default_factory=OperationalConfig)

    log_dir: Path = field(default_factory=lambda: Path("data/logs"))
    env_file: Optional[Path] = None

    def __post_init__(self):
        """Load configuration from environment after initialization."""
        env_file = self.env_file or Path(os.getenv("GRIDSERIES_ENV_FILE", ".env"))
        if env_file.exists():
            load_dotenv(env_file, override=False)

        self.store = StoreConfig(
            backend=self._get_choice("GRIDSERIES_STORE_BACKEND", "memory", STORE_BACKENDS),
            redis_url=self._get_redis_url(),
            key_prefix=os.getenv("GRIDSERIES_KEY_PREFIX", "gridseries")
        )

        expire_after = self._get_optional_int("EXPIRE_AFTER_SECONDS")
        self.collection = CollectionConfig(
            time_field=os.getenv("TIME_FIELD", "timestamp"),
            meta_field=os.getenv("META_FIELD", "metadata"),
            measurement_field=os.getenv("MEASUREMENT_FIELD", "value"),
            granularity=Granularity(
                self._get_choice("GRANULARITY", "minutes", [g.value for g in Granularity])
            ),
            expire_after_seconds=expire_after
        )

        self.aggregation = AggregationConfig(
            window_count=self._get_int("WINDOW_COUNT", DEFAULT_WINDOW_COUNT, minimum=0),
            window_duration_seconds=self._get_int("WINDOW_DURATION_SECONDS", 3600, minimum=0),
            bucket_count=self._get_int("BUCKET_COUNT", DEFAULT_BUCKET_COUNT, minimum=1),
            downsample_collection=os.getenv("DOWNSAMPLE_COLLECTION", "readings_downsampled"),
            parallel=os.getenv("AGGREGATION_PARALLEL", "false").lower() in ("1", "true", "yes")
        )

        self.retention = RetentionConfig(
            max_age_seconds=self._get_optional_int("RETENTION_MAX_AGE_SECONDS") or expire_after,
            sweep_interval_seconds=self._get_int("SWEEP_INTERVAL_SECONDS", 300, minimum=1)
        )

        self.operational = OperationalConfig(
            max_retries=self._get_int("MAX_RETRIES", 3, minimum=1),
            retry_delay=float(os.getenv("RETRY_DELAY", "1.0"))
        )

        self.log_dir = Path(os.getenv("GRIDSERIES_LOG_DIR", str(self.log_dir)))

    @property
    def retention_policy(self) -> Optional[RetentionPolicy]:
        """Retention policy for the sweeper, or None when expiry is disabled."""
        if self.retention.max_age_seconds is None:
            return None
        return RetentionPolicy(max_age_seconds=self.retention.max_age_seconds)

    def _get_redis_url(self) -> str:
        """
        Resolve the Redis URL.

        Connection priority:
            1. REDIS_URL environment variable
            2. Build from REDIS_HOST and REDIS_PORT (container-friendly)
            3. Default: redis://localhost:6379
        """
        if os.getenv("REDIS_URL"):
            return os.environ["REDIS_URL"]
        redis_host = os.getenv("REDIS_HOST", "localhost")
        redis_port = os.getenv("REDIS_PORT", "6379")
        return f"redis://{redis_host}:{redis_port}"

    def _get_int(self, key: str, default: int, minimum: Optional[int] = None) -> int:
        """
        Get an integer environment variable.

        Raises:
            ValueError: If the value is not an integer or below minimum
        """
        raw = os.getenv(key)
        if raw is None or raw == "":
            return default
        try:
            value = int(raw)
        except ValueError:
            raise ValueError(f"Environment variable {key} must be an integer, got {raw!r}")
        if minimum is not None and value < minimum:
            raise ValueError(f"Environment variable {key} must be >= {minimum}, got {value}")
        return value

    def _get_optional_int(self, key: str) -> Optional[int]:
        """Get a positive integer environment variable, or None if unset."""
        raw = os.getenv(key)
        if raw is None or raw == "":
            return None
        return self._get_int(key, 0, minimum=1)

    def _get_choice(self, key: str, default: str, choices) -> str:
        """
        Get an environment variable restricted to a set of values.

        Raises:
            ValueError: If the value is not one of choices
        """
        value = os.getenv(key, default).lower()
        if value not in choices:
            raise ValueError(
                f"Environment variable {key} must be one of {', '.join(choices)}, got {value!r}"
            )
        return value

    def ensure_directories(self) -> None:
        """Create the log directory if it doesn't exist."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
