"""Time utilities for the domain layer."""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def ensure_tz_aware(dt: datetime) -> datetime:
    """Ensure datetime is timezone-aware (UTC if naive)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def from_epoch(value: Optional[float]) -> Optional[datetime]:
    """Convert provider epoch seconds to an aware datetime (None passes through)."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def to_epoch(dt: Optional[datetime]) -> Optional[int]:
    if dt is None:
        return None
    return int(ensure_tz_aware(dt).timestamp())
