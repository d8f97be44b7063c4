"""Injectable source of "now" and UTC normalization for stored timestamps."""
from datetime import datetime, UTC
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current wall-clock time in UTC."""
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Return ``dt`` as an aware UTC datetime.

    SQLite returns ``DateTime(timezone=True)`` columns without tzinfo; those
    values were written in UTC, so they are tagged rather than shifted.
    Aware values in another zone are converted. ``None`` passes through.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)
