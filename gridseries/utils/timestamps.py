"""
GridSeries - Timestamp Helpers

Conversions between ISO-8601 strings, timezone-aware datetimes and epoch
seconds. All timestamps inside the package are UTC-aware datetimes.
"""

from datetime import datetime, timezone
from typing import Any


def ensure_utc(value: datetime) -> datetime:
    """Return value as a UTC-aware datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp or datetime into a UTC-aware datetime.

    Accepts forms like 2024-01-01T00:00:00Z, 2024-01-01T02:00:00+02:00 and
    2024-01-01 00:00:00 (taken as UTC).

    Raises:
        ValueError: If the value is not a datetime or parseable string
    """
    if isinstance(value, datetime):
        return ensure_utc(value)

    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"timestamp must be an ISO-8601 string, got {value!r}")

    text = value.strip()
    # fromisoformat() only learned about the Z suffix in 3.11
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"

    return ensure_utc(datetime.fromisoformat(text))


def to_epoch(value: datetime) -> float:
    """Convert a datetime to epoch seconds."""
    return ensure_utc(value).timestamp()


def from_epoch(seconds: float) -> datetime:
    """Convert epoch seconds to a UTC-aware datetime."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as an RFC 3339 string with a Z suffix."""
    return ensure_utc(value).isoformat().replace("+00:00", "Z")
