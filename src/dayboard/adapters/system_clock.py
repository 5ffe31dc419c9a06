"""System clock adapter."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from dayboard.core.dates import local_date


class SystemClock:
    """
    Wall clock in a fixed time zone.

    Implements Clock protocol.
    """

    def __init__(self, timezone: str):
        self.timezone = timezone
        self._tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self._tz)

    def today(self) -> date:
        return local_date(self.now(), self.timezone)
