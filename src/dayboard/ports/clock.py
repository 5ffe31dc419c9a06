"""Clock interface."""

from datetime import date, datetime
from typing import Protocol


class Clock(Protocol):
    """Interface for the current instant and the viewer's local date."""

    def now(self) -> datetime:
        """Current time as an aware datetime in the viewer's time zone."""
        ...

    def today(self) -> date:
        """The viewer's local calendar date."""
        ...
