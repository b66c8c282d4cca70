"""
UTC datetime utilities for consistent timezone handling.

All cache timestamps in the console are timezone-aware UTC.
Use these helpers instead of datetime.now() or datetime.utcnow().
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Return the current UTC datetime with timezone info.

    Used as the default clock for cache entry timestamps; tests inject
    their own clock instead.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(UTC)


def seconds_since(moment: datetime, now: datetime | None = None) -> float:
    """
    Return the number of seconds elapsed since ``moment``.

    Args:
        moment: Earlier timezone-aware datetime
        now: Reference time (defaults to utc_now())

    Returns:
        Elapsed seconds (negative if ``moment`` is in the future)
    """
    reference = now if now is not None else utc_now()
    return (reference - moment).total_seconds()
