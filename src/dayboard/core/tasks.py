"""Pure task domain logic - no I/O dependencies."""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum


class Status(Enum):
    """Task completion status."""

    TODO = "todo"
    DONE = "done"


class Priority(Enum):
    """Task priority levels."""

    VERY_LOW = "very-low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very-high"


@dataclass
class Task:
    """
    A task on the today list or a user-defined panel.

    parent_id points at a continuous parent task (for generated daily children)
    or at a recurring template (for recurrence occurrences).
    """

    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    rank: str
    description: str | None = None
    status: Status = Status.TODO
    priority: Priority = Priority.MEDIUM
    is_pinned: bool = False
    start_date: date | None = None
    due_date: date | None = None
    completed_at: datetime | None = None
    panel_id: str | None = None
    auto_generate_daily: bool = False
    parent_id: str | None = None
    last_generated_date: date | None = None
    reminder_time: str | None = None
    reminder_date: date | None = None

    @property
    def is_done(self) -> bool:
        return self.status == Status.DONE

    @property
    def is_multi_day(self) -> bool:
        """Spans more than one calendar day (start and due dates differ)."""
        if self.start_date is None or self.due_date is None:
            return False
        return self.start_date != self.due_date

    @property
    def is_continuous_parent(self) -> bool:
        """Flagged for daily generation with a usable [start, due] window."""
        return (
            self.auto_generate_daily
            and self.start_date is not None
            and self.due_date is not None
            and self.start_date <= self.due_date
        )

    def covers(self, day: date) -> bool:
        """True if `day` falls inside the task's [start_date, due_date] window."""
        if self.start_date is None or self.due_date is None:
            return False
        return self.start_date <= day <= self.due_date

    def to_dict(self) -> dict:
        """JSON-friendly representation."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "is_pinned": self.is_pinned,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "panel_id": self.panel_id,
            "rank": self.rank,
            "auto_generate_daily": self.auto_generate_daily,
            "parent_id": self.parent_id,
            "reminder_time": self.reminder_time,
            "reminder_date": self.reminder_date.isoformat() if self.reminder_date else None,
        }


@dataclass
class Subtask:
    """A checklist item owned by a task."""

    id: str
    task_id: str
    title: str
    completed: bool = False
    order: int = 0
    description: str | None = None
    start_date: date | None = None
    due_date: date | None = None


def sort_tasks(tasks: list[Task]) -> list[Task]:
    """
    Display order for a list: todo before done, pinned before unpinned, then rank.

    Pure function - no I/O.
    """
    return sorted(tasks, key=lambda t: (t.is_done, not t.is_pinned, t.rank))


def new_task_id() -> str:
    """Opaque unique identifier for a task, subtask or template."""
    return str(uuid.uuid4())

