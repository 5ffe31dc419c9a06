"""Task store interface."""

from contextlib import AbstractContextManager
from datetime import date
from typing import Protocol

from dayboard.core.recurrence import RecurringTemplate
from dayboard.core.tasks import Status, Subtask, Task


class TaskStore(Protocol):
    """Interface for persisting tasks, subtasks and recurring templates."""

    def transaction(self) -> AbstractContextManager["TaskStore"]:
        """Group writes into one all-or-nothing unit. Re-entrant."""
        ...

    def get_task(self, task_id: str) -> Task | None:
        """Fetch a task by id. Returns None if absent."""
        ...

    def list_tasks(
        self,
        panel_id: str | None = None,
        status: Status | None = None,
        all_panels: bool = False,
    ) -> list[Task]:
        """List tasks of one panel (None = today scope), or of every panel."""
        ...

    def create_task(self, task: Task) -> Task:
        ...

    def update_task(self, task: Task) -> Task:
        ...

    def delete_task(self, task_id: str) -> bool:
        """Delete a task and its subtasks. Returns False if it did not exist."""
        ...

    def find_children(self, parent_id: str, due_date: date) -> list[Task]:
        """Tasks with the given parent_id due on the given date."""
        ...

    def list_continuous_parents(self) -> list[Task]:
        """Tasks flagged auto_generate_daily."""
        ...

    def list_subtasks(self, task_id: str) -> list[Subtask]:
        """Subtasks of a task in display order."""
        ...

    def create_subtask(self, subtask: Subtask) -> Subtask:
        ...

    def update_subtask(self, subtask: Subtask) -> Subtask:
        ...

    def delete_subtask(self, subtask_id: str) -> bool:
        ...

    def get_template(self, template_id: str) -> RecurringTemplate | None:
        ...

    def list_templates(self, enabled_only: bool = False) -> list[RecurringTemplate]:
        ...

    def create_template(self, template: RecurringTemplate) -> RecurringTemplate:
        ...

    def update_template(self, template: RecurringTemplate) -> RecurringTemplate:
        ...

    def delete_template(self, template_id: str) -> bool:
        ...
