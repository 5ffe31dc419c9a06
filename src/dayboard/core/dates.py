"""Local calendar date helpers - no I/O dependencies."""

from datetime import date, datetime
from zoneinfo import ZoneInfo


def local_date(instant: datetime, timezone: str) -> date:
    """
    Calendar date of `instant` as seen on a wall clock in `timezone`.

    Built from the local year/month/day, never from the UTC rendering: at
    2026-01-01T17:00Z a viewer at +08:00 is already on 2026-01-02.
    """
    if instant.tzinfo is None:
        raise ValueError("local_date needs an aware datetime")
    local = instant.astimezone(ZoneInfo(timezone))
    return date(local.year, local.month, local.day)
