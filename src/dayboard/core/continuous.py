"""Continuous (auto-generate daily) task planning.

Pure functions - no I/O. A continuous parent spans [start_date, due_date] and
gets one single-day child per local date in that window. Which day is "today"
is always passed in by the caller.
"""

from dataclasses import replace
from datetime import date, datetime

from .rank import initial_rank
from .tasks import Status, Subtask, Task, new_task_id

AUTO_MARKER = "[auto]"


def child_title(parent: Task, day: date) -> str:
    """Title of the child generated for `day`, e.g. "Read 01.02"."""
    return f"{parent.title} {day.month:02d}.{day.day:02d}"


def is_eligible(parent: Task, day: date) -> bool:
    """
    A parent can produce a child for `day`.

    Requires a valid continuous window containing `day`, an open parent, and no
    generation recorded for that day yet.
    """
    return (
        parent.is_continuous_parent
        and parent.status == Status.TODO
        and parent.covers(day)
        and parent.last_generated_date != day
    )


def is_child_for(task: Task, parent: Task, day: date) -> bool:
    """A single-day task generated from `parent` for `day`."""
    return task.parent_id == parent.id and task.due_date == day and not task.is_multi_day


def is_terminal_child(child: Task, parent: Task) -> bool:
    """The child generated for the parent's last eligible date."""
    return (
        parent.is_continuous_parent
        and child.parent_id == parent.id
        and child.due_date is not None
        and child.due_date == parent.due_date
        and not child.is_multi_day
    )


def build_child(parent: Task, day: date, now: datetime) -> Task:
    """The child task for `day`; priority and panel come from the parent."""
    description = f"{parent.description}\n\n{AUTO_MARKER}" if parent.description else AUTO_MARKER
    return Task(
        id=new_task_id(),
        title=child_title(parent, day),
        description=description,
        created_at=now,
        updated_at=now,
        rank=initial_rank(now),
        priority=parent.priority,
        start_date=day,
        due_date=day,
        panel_id=parent.panel_id,
        parent_id=parent.id,
    )


def subtasks_for_day(subtasks: list[Subtask], day: date) -> list[Subtask]:
    """Parent subtasks tagged for `day` (by start date), in display order."""
    return sorted((s for s in subtasks if s.start_date == day), key=lambda s: s.order)


def copy_subtasks(subtasks: list[Subtask], child_id: str) -> list[Subtask]:
    """Fresh, unchecked, undated copies owned by the child."""
    return [
        replace(
            s,
            id=new_task_id(),
            task_id=child_id,
            completed=False,
            start_date=None,
            due_date=None,
        )
        for s in subtasks
    ]
