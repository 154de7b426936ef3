"""Shared utilities for quote aggregation."""

from datetime import datetime, timezone
from typing import Iterator, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(ts: Optional[float]) -> datetime:
    """Convert optional Unix timestamp (seconds) to UTC datetime; fallback to now."""
    return datetime.fromtimestamp(ts, tz=timezone.utc) if ts else utc_now()


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])
