"""Functional core - pure business logic with no I/O."""

from .tasks import Priority, Status, Subtask, Task, sort_tasks
from .rank import compare, initial_rank, new_rank, pin_rank, unique_rank, unpin_rank
from .transitions import Action, apply, complete, pin, reopen, unpin
from .recurrence import Frequency, RecurringTemplate, is_due, parse_rule
from .continuous import build_child, is_eligible, is_terminal_child, subtasks_for_day
from .dates import local_date

__all__ = [
    # Tasks
    "Priority",
    "Status",
    "Subtask",
    "Task",
    "sort_tasks",
    # Ranks
    "compare",
    "initial_rank",
    "new_rank",
    "pin_rank",
    "unique_rank",
    "unpin_rank",
    # Transitions
    "Action",
    "apply",
    "complete",
    "pin",
    "reopen",
    "unpin",
    # Recurrence
    "Frequency",
    "RecurringTemplate",
    "is_due",
    "parse_rule",
    # Continuous tasks
    "build_child",
    "is_eligible",
    "is_terminal_child",
    "subtasks_for_day",
    # Dates
    "local_date",
]
