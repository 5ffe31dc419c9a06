"""Task state machine: status and pin transitions.

Pure functions - no I/O. Each transition returns a new Task; the input is never
mutated. A transition that would not change anything returns the task as-is,
so callers can skip the write by comparing identity.
"""

from dataclasses import replace
from datetime import datetime
from enum import Enum

from .rank import pin_rank, unpin_rank
from .tasks import Status, Task


class Action(Enum):
    """Transitions a caller can request for a task."""

    COMPLETE = "complete"
    REOPEN = "reopen"
    TOGGLE = "toggle"
    PIN = "pin"
    UNPIN = "unpin"
    TOGGLE_PIN = "toggle-pin"


def complete(task: Task, now: datetime) -> Task:
    """
    todo -> done.

    Sets completed_at and drops the task out of the pinned lane; rank is kept.
    """
    if task.is_done:
        return task
    return replace(
        task,
        status=Status.DONE,
        completed_at=now,
        is_pinned=False,
        updated_at=now,
    )


def reopen(task: Task, now: datetime) -> Task:
    """done -> todo. Rank and pin are left where they were."""
    if not task.is_done:
        return task
    return replace(task, status=Status.TODO, completed_at=None, updated_at=now)


def pin(task: Task, siblings: list[Task], now: datetime) -> Task:
    """Pin a todo task, stacking it after the already pinned ones."""
    if task.is_done or task.is_pinned:
        return task
    return replace(task, is_pinned=True, rank=pin_rank(task, siblings), updated_at=now)


def unpin(task: Task, siblings: list[Task], now: datetime) -> Task:
    """Unpin a todo task, placing it ahead of the unpinned ones."""
    if task.is_done or not task.is_pinned:
        return task
    return replace(task, is_pinned=False, rank=unpin_rank(task, siblings), updated_at=now)


def apply(task: Task, action: Action, siblings: list[Task], now: datetime) -> Task:
    """Apply `action` to `task`; `siblings` is the task's list, used for pin ranks."""
    match action:
        case Action.COMPLETE:
            return complete(task, now)
        case Action.REOPEN:
            return reopen(task, now)
        case Action.TOGGLE:
            return reopen(task, now) if task.is_done else complete(task, now)
        case Action.PIN:
            return pin(task, siblings, now)
        case Action.UNPIN:
            return unpin(task, siblings, now)
        case Action.TOGGLE_PIN:
            return unpin(task, siblings, now) if task.is_pinned else pin(task, siblings, now)
    raise ValueError(f"Unknown action: {action!r}")
