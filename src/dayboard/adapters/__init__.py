"""Adapters - I/O implementations of ports."""

from .holiday_files import FileHolidayCalendar, HolidayDataFetcher
from .sqlite_store import SQLiteTaskStore
from .system_clock import SystemClock

__all__ = [
    "FileHolidayCalendar",
    "HolidayDataFetcher",
    "SQLiteTaskStore",
    "SystemClock",
]
