"""Holiday calendar interface."""

from datetime import date
from typing import Protocol


class HolidayCalendar(Protocol):
    """Interface for looking up official rest days and makeup workdays."""

    def is_rest_day(self, day: date) -> bool:
        """True for a weekend or statutory holiday listed by the calendar."""
        ...

    def is_makeup_workday(self, day: date) -> bool:
        """True for a weekend day officially turned into a workday."""
        ...
