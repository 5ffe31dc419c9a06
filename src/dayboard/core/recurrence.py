"""Recurring task templates and their frequency rules.

Pure functions - no I/O. Business-day questions are answered by an injected
holiday calendar (see ports.holiday_calendar).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from ..errors import InvalidTemplateError
from .rank import initial_rank
from .tasks import Priority, Task, new_task_id

if TYPE_CHECKING:
    from ..ports.holiday_calendar import HolidayCalendar


class Frequency(Enum):
    """How often a template produces an occurrence."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    WORKDAY = "workday"
    HOLIDAY = "holiday"
    CUSTOM = "custom"


@dataclass
class RecurringTemplate:
    """
    A standing rule that materializes one task per matching date.

    frequency is kept as the raw stored string so an unknown value can be
    reported instead of failing on load. The list parameters only matter for
    the frequency that uses them.
    """

    id: str
    title: str
    frequency: str
    time: str = ""
    enabled: bool = True
    priority: Priority = Priority.MEDIUM
    reminder_time: str | None = None
    last_generated: date | None = None
    start_date: date | None = None
    week_days: list[int] = field(default_factory=list)
    month_days: list[int] = field(default_factory=list)
    interval_days: int | None = None
    remind_day_offsets: list[int] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        """JSON-friendly representation."""
        return {
            "id": self.id,
            "title": self.title,
            "frequency": self.frequency,
            "time": self.time,
            "enabled": self.enabled,
            "priority": self.priority.value,
            "reminder_time": self.reminder_time,
            "last_generated": self.last_generated.isoformat() if self.last_generated else None,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "week_days": self.week_days,
            "month_days": self.month_days,
            "interval_days": self.interval_days,
            "remind_day_offsets": self.remind_day_offsets,
        }


# ============== Rules ==============


@dataclass(frozen=True)
class Daily:
    pass


@dataclass(frozen=True)
class Weekly:
    week_days: frozenset[int]  # 1=Monday .. 7=Sunday


@dataclass(frozen=True)
class Monthly:
    month_days: frozenset[int]


@dataclass(frozen=True)
class Yearly:
    month: int
    day: int


@dataclass(frozen=True)
class Workday:
    pass


@dataclass(frozen=True)
class Holiday:
    pass


@dataclass(frozen=True)
class Custom:
    start_date: date
    interval_days: int
    remind_offsets: tuple[int, ...] = ()


Rule = Daily | Weekly | Monthly | Yearly | Workday | Holiday | Custom


def parse_hhmm(value: str) -> tuple[int, int]:
    """Parse "HH:MM" into (hour, minute). Raises ValueError on bad input."""
    hour_str, sep, minute_str = value.strip().partition(":")
    if not sep:
        raise ValueError(f"Expected HH:MM, got {value!r}")
    hour, minute = int(hour_str), int(minute_str)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Time out of range: {value!r}")
    return hour, minute


def parse_rule(template: RecurringTemplate) -> Rule:
    """
    Build the frequency rule for a template.

    Raises InvalidTemplateError for an unknown frequency or parameters that do
    not fit it (e.g. custom without an interval).
    """

    def invalid(reason: str) -> InvalidTemplateError:
        return InvalidTemplateError(template.id, reason)

    for label, value in (("time", template.time), ("reminder_time", template.reminder_time)):
        if value:
            try:
                parse_hhmm(value)
            except ValueError as e:
                raise invalid(f"bad {label}: {e}") from e

    try:
        frequency = Frequency(template.frequency)
    except ValueError:
        raise invalid(f"unknown frequency {template.frequency!r}") from None

    match frequency:
        case Frequency.DAILY:
            return Daily()
        case Frequency.WEEKLY:
            if not template.week_days:
                raise invalid("weekly frequency needs week_days")
            if any(d < 1 or d > 7 for d in template.week_days):
                raise invalid(f"week_days must be within 1..7, got {template.week_days}")
            return Weekly(frozenset(template.week_days))
        case Frequency.MONTHLY:
            if not template.month_days:
                raise invalid("monthly frequency needs month_days")
            if any(d < 1 or d > 31 for d in template.month_days):
                raise invalid(f"month_days must be within 1..31, got {template.month_days}")
            return Monthly(frozenset(template.month_days))
        case Frequency.YEARLY:
            if template.start_date is None:
                raise invalid("yearly frequency needs start_date")
            return Yearly(template.start_date.month, template.start_date.day)
        case Frequency.WORKDAY:
            return Workday()
        case Frequency.HOLIDAY:
            return Holiday()
        case Frequency.CUSTOM:
            if template.start_date is None:
                raise invalid("custom frequency needs start_date")
            if not template.interval_days or template.interval_days < 1:
                raise invalid("custom frequency needs interval_days >= 1")
            offsets = sorted({o for o in template.remind_day_offsets if 1 <= o <= template.interval_days})
            return Custom(template.start_date, template.interval_days, tuple(offsets))
    raise invalid(f"unhandled frequency {frequency.value!r}")


def is_business_day(day: date, calendar: HolidayCalendar) -> bool:
    """Makeup workdays count; otherwise Mon-Fri that is not a rest day."""
    if calendar.is_makeup_workday(day):
        return True
    if calendar.is_rest_day(day):
        return False
    return day.isoweekday() <= 5


def is_due(rule: Rule, day: date, calendar: HolidayCalendar) -> bool:
    """Whether `rule` produces an occurrence on `day`."""
    match rule:
        case Daily():
            return True
        case Weekly(week_days=week_days):
            return day.isoweekday() in week_days
        case Monthly(month_days=month_days):
            return day.day in month_days
        case Yearly(month=month, day=dom):
            return (day.month, day.day) == (month, dom)
        case Workday():
            return is_business_day(day, calendar)
        case Holiday():
            return not is_business_day(day, calendar)
        case Custom(start_date=start, interval_days=interval):
            elapsed = (day - start).days
            return elapsed >= 0 and elapsed % interval == 0
    raise TypeError(f"Unhandled rule: {rule!r}")


def cycle_position(rule: Custom, day: date) -> int | None:
    """1-based day within the current custom cycle, or None before the start."""
    elapsed = (day - rule.start_date).days
    if elapsed < 0:
        return None
    return elapsed % rule.interval_days + 1


def reminder_date(rule: Rule, day: date) -> date | None:
    """
    Date the reminder of the occurrence generated on `day` fires.

    A task carries one reminder, so custom cycles use the first configured
    offset not yet behind `day` in its cycle (None when all are). Every other
    rule reminds on the occurrence date itself.
    """
    if isinstance(rule, Custom) and rule.remind_offsets:
        position = cycle_position(rule, day) or 1
        upcoming = [offset for offset in rule.remind_offsets if offset >= position]
        return day + timedelta(days=upcoming[0] - position) if upcoming else None
    return day


def time_reached(template: RecurringTemplate, now: datetime) -> bool:
    """True once the local wall clock has reached the template's time-of-day."""
    if not template.time:
        return True
    hour, minute = parse_hhmm(template.time)
    return (now.hour, now.minute) >= (hour, minute)


def should_reset_last_generated(
    old: RecurringTemplate, new: RecurringTemplate, now: datetime
) -> bool:
    """
    An edit that moves today's time-of-day later than now re-arms the template.

    Only applies when the template already generated today.
    """
    if not new.time or new.time == old.time:
        return False
    if old.last_generated != now.date():
        return False
    hour, minute = parse_hhmm(new.time)
    return (hour, minute) > (now.hour, now.minute)


def build_occurrence(template: RecurringTemplate, rule: Rule, day: date, now: datetime) -> Task:
    """Materialize the task a template produces for `day`."""
    reminder_time = template.reminder_time
    if isinstance(rule, Custom) and rule.remind_offsets:
        reminder_time = reminder_time or template.time or None
    remind_on = reminder_date(rule, day) if reminder_time else None

    return Task(
        id=new_task_id(),
        title=template.title,
        description=f"Generated from recurring template ({template.frequency})",
        created_at=now,
        updated_at=now,
        rank=initial_rank(now),
        priority=template.priority,
        start_date=day,
        due_date=day,
        parent_id=template.id,
        reminder_time=reminder_time,
        reminder_date=remind_on,
    )
