"""Ports - interfaces/protocols for external dependencies."""

from .task_store import TaskStore
from .holiday_calendar import HolidayCalendar
from .clock import Clock

__all__ = [
    "TaskStore",
    "HolidayCalendar",
    "Clock",
]
