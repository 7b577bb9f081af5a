"""Timezone helpers and the repository clock.

Records store naive datetimes that represent UTC, matching what SQLite
round-trips. ``MonotonicClock`` never returns the same reading twice, so
records created back to back keep their insertion order when sorted by
timestamp.
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def utc_now_naive() -> datetime:
    """Return current UTC time as naive datetime (for DB compatibility)."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_utc_naive(dt: datetime | None) -> datetime | None:
    """Convert a datetime to naive UTC datetime.

    Args:
        dt: Datetime to convert (can be aware or naive)

    Returns:
        Naive datetime in UTC, or None if input is None
    """
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt


class MonotonicClock:
    """Strictly increasing naive-UTC clock."""

    TICK = timedelta(microseconds=1)

    def __init__(self) -> None:
        self._last: datetime | None = None

    def now(self) -> datetime:
        current = utc_now_naive()
        if self._last is not None and current <= self._last:
            current = self._last + self.TICK
        self._last = current
        return current
