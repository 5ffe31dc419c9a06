"""Engine operations shared by the CLI and the background service.

Every operation runs inside one store transaction: either all of its writes land
or none do. "now" is always the local wall-clock time and "today" the local
calendar date; both are passed in, never read from an ambient clock.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime

from .core import continuous, transitions
from .core.rank import initial_rank, new_rank, unique_rank
from .core.recurrence import (
    RecurringTemplate,
    build_occurrence,
    is_due,
    parse_rule,
    should_reset_last_generated,
    time_reached,
)
from .core.tasks import Priority, Status, Subtask, Task, new_task_id
from .errors import InvalidTemplateError, TaskNotFoundError, TemplateNotFoundError
from .ports import HolidayCalendar, TaskStore

logger = logging.getLogger(__name__)

# Fields only the state machine and rank ordering may change.
MANAGED_FIELDS = {"id", "status", "completed_at", "is_pinned", "rank", "created_at", "updated_at"}


@dataclass
class GenerationResult:
    """Outcome of a generation check."""

    generated: int = 0
    source_ids: list[str] = field(default_factory=list)
    task_ids: list[str] = field(default_factory=list)

    def merge(self, other: "GenerationResult") -> "GenerationResult":
        self.generated += other.generated
        self.source_ids.extend(other.source_ids)
        self.task_ids.extend(other.task_ids)
        return self

    def to_dict(self) -> dict:
        return {
            "generated": self.generated,
            "source_ids": self.source_ids,
            "task_ids": self.task_ids,
        }


def _require_task(store: TaskStore, task_id: str) -> Task:
    task = store.get_task(task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    return task


def _require_template(store: TaskStore, template_id: str) -> RecurringTemplate:
    template = store.get_template(template_id)
    if template is None:
        raise TemplateNotFoundError(template_id)
    return template


def _check_dates(start_date: date | None, due_date: date | None) -> None:
    if start_date and due_date and due_date < start_date:
        raise ValueError(f"Due date {due_date} is before start date {start_date}")


def _insert_task(store: TaskStore, task: Task) -> Task:
    """Store a new task on a rank no other task in its list holds."""
    taken = [t.rank for t in store.list_tasks(panel_id=task.panel_id)]
    rank = unique_rank(task.rank, taken)
    if rank != task.rank:
        logger.debug(f"Rank {task.rank!r} taken in list {task.panel_id}, using {rank!r}")
        task = replace(task, rank=rank)
    return store.create_task(task)


# ============== Ranks ==============


def compute_rank(after: str | None = None, before: str | None = None) -> str:
    """Rank strictly between two neighbours (either may be missing)."""
    return new_rank(after, before)


def move_task(
    store: TaskStore,
    task_id: str,
    now: datetime,
    after_id: str | None = None,
    before_id: str | None = None,
) -> Task:
    """
    Drop a task between two neighbours.

    Only the moved task's rank is rewritten.
    """
    with store.transaction():
        task = _require_task(store, task_id)
        after = _require_task(store, after_id).rank if after_id else None
        before = _require_task(store, before_id).rank if before_id else None
        moved = replace(task, rank=compute_rank(after, before), updated_at=now)
        store.update_task(moved)
        logger.debug(f"Moved task {task_id} to rank {moved.rank!r}")
        return moved


# ============== Tasks ==============


def create_task(
    store: TaskStore,
    title: str,
    now: datetime,
    today: date,
    *,
    description: str | None = None,
    priority: Priority = Priority.MEDIUM,
    start_date: date | None = None,
    due_date: date | None = None,
    panel_id: str | None = None,
    auto_generate_daily: bool = False,
    reminder_time: str | None = None,
) -> Task:
    """Create a task; a continuous parent immediately gets today's child."""
    _check_dates(start_date, due_date)
    task = Task(
        id=new_task_id(),
        title=title,
        description=description,
        created_at=now,
        updated_at=now,
        rank=initial_rank(now),
        priority=priority,
        start_date=start_date,
        due_date=due_date,
        panel_id=panel_id,
        auto_generate_daily=auto_generate_daily,
        reminder_time=reminder_time,
    )
    with store.transaction():
        task = _insert_task(store, task)
        if task.auto_generate_daily:
            check_and_generate_continuous_tasks(store, today, now, parent_id=task.id)
    return store.get_task(task.id) or task


def update_task(store: TaskStore, task_id: str, now: datetime, today: date, **changes) -> Task:
    """
    Edit plain task fields.

    Status, pin and rank are changed through transition() and move_task().
    Switching auto_generate_daily on triggers generation for today.
    """
    managed = MANAGED_FIELDS & changes.keys()
    if managed:
        raise ValueError(f"Fields cannot be edited directly: {', '.join(sorted(managed))}")

    with store.transaction():
        task = _require_task(store, task_id)
        updated = replace(task, **changes, updated_at=now)
        _check_dates(updated.start_date, updated.due_date)
        store.update_task(updated)
        if updated.auto_generate_daily and not task.auto_generate_daily:
            check_and_generate_continuous_tasks(store, today, now, parent_id=task_id)
        return store.get_task(task_id) or updated


def delete_task(store: TaskStore, task_id: str) -> None:
    """Delete a task together with its subtasks."""
    with store.transaction():
        if not store.delete_task(task_id):
            raise TaskNotFoundError(task_id)
    logger.debug(f"Deleted task {task_id}")


def add_subtask(
    store: TaskStore,
    task_id: str,
    title: str,
    *,
    description: str | None = None,
    start_date: date | None = None,
    due_date: date | None = None,
) -> Subtask:
    """Append a subtask to the end of a task's checklist."""
    with store.transaction():
        _require_task(store, task_id)
        existing = store.list_subtasks(task_id)
        order = max((s.order for s in existing), default=-1) + 1
        subtask = Subtask(
            id=new_task_id(),
            task_id=task_id,
            title=title,
            description=description,
            order=order,
            start_date=start_date,
            due_date=due_date,
        )
        return store.create_subtask(subtask)


# ============== State machine ==============


def _sync_status(store: TaskStore, target: Task, status: Status, now: datetime) -> Task | None:
    """Bring `target` to `status`. Returns the written task, or None if unchanged."""
    if status == Status.DONE:
        synced = transitions.complete(target, now)
    else:
        synced = transitions.reopen(target, now)
    if synced is target:
        return None
    store.update_task(synced)
    return synced


def _sync_terminal_completion(store: TaskStore, task: Task, now: datetime) -> None:
    """Propagate a status change across a continuous parent and its terminal child."""
    # A done task carries its completion time so both sides match exactly.
    stamp = task.completed_at or now

    if task.parent_id:
        parent = store.get_task(task.parent_id)
        if parent is not None and continuous.is_terminal_child(task, parent):
            if _sync_status(store, parent, task.status, stamp):
                logger.info(f"Terminal child {task.id} set parent {parent.id} to {task.status.value}")

    if task.is_continuous_parent and task.due_date is not None:
        for child in store.find_children(task.id, task.due_date):
            if continuous.is_terminal_child(child, task):
                if _sync_status(store, child, task.status, stamp):
                    logger.info(f"Parent {task.id} set terminal child {child.id} to {task.status.value}")


def transition(store: TaskStore, task_id: str, action: transitions.Action, now: datetime) -> Task:
    """
    Apply a state machine action to a stored task.

    A no-op action (e.g. completing a done task) writes nothing. Raises
    TaskNotFoundError if the task does not exist.
    """
    with store.transaction():
        task = _require_task(store, task_id)
        siblings = store.list_tasks(panel_id=task.panel_id, status=Status.TODO)
        updated = transitions.apply(task, action, siblings, now)
        if updated is task:
            logger.debug(f"Action {action.value} on task {task_id} changed nothing")
            return task

        store.update_task(updated)
        if updated.status != task.status:
            _sync_terminal_completion(store, updated, now)
        return updated


# ============== Recurring templates ==============


def generate_occurrence(
    store: TaskStore,
    template: RecurringTemplate,
    day: date,
    calendar: HolidayCalendar,
    now: datetime,
) -> GenerationResult:
    """
    Materialize the template's occurrence for `day` if it is due and not yet made.

    Raises InvalidTemplateError for a template whose frequency cannot be
    evaluated; returns generated=0 when disabled, not due, or already generated.
    """
    with store.transaction():
        # Re-read so a stale copy cannot slip past the lastGenerated guard.
        template = _require_template(store, template.id)
        if not template.enabled:
            logger.debug(f"Template {template.id} disabled, skipping")
            return GenerationResult()

        rule = parse_rule(template)
        if template.last_generated == day:
            logger.debug(f"Template {template.id} already generated for {day}")
            return GenerationResult()
        if not is_due(rule, day, calendar):
            logger.debug(f"Template {template.id} not due on {day}")
            return GenerationResult()

        if store.find_children(template.id, day):
            store.update_template(replace(template, last_generated=day))
            logger.info(f"Template {template.id} already has a task for {day}, synced lastGenerated")
            return GenerationResult()

        task = _insert_task(store, build_occurrence(template, rule, day, now))
        store.update_template(replace(template, last_generated=day))
        logger.info(f"Generated recurring task {task.id} '{task.title}' for {day}")
        return GenerationResult(generated=1, source_ids=[template.id], task_ids=[task.id])


def check_and_generate_recurring_tasks(
    store: TaskStore, calendar: HolidayCalendar, now: datetime
) -> GenerationResult:
    """
    Evaluate every enabled template for the local date of `now`.

    Templates with a time-of-day wait until that time is reached. Invalid
    templates are logged and skipped so the rest still run.
    """
    today = now.date()
    result = GenerationResult()
    for template in store.list_templates(enabled_only=True):
        try:
            parse_rule(template)
        except InvalidTemplateError as e:
            logger.warning(f"Skipping template: {e}")
            continue
        if not time_reached(template, now):
            logger.debug(f"Template {template.id} waits until {template.time}")
            continue
        result.merge(generate_occurrence(store, template, today, calendar, now))

    if result.generated:
        logger.info(f"Generated {result.generated} recurring task(s) for {today}")
    return result


def create_template(
    store: TaskStore,
    title: str,
    frequency: str,
    now: datetime,
    *,
    time: str = "",
    priority: Priority = Priority.MEDIUM,
    reminder_time: str | None = None,
    start_date: date | None = None,
    week_days: list[int] | None = None,
    month_days: list[int] | None = None,
    interval_days: int | None = None,
    remind_day_offsets: list[int] | None = None,
    enabled: bool = True,
) -> RecurringTemplate:
    """Validate and store a new recurring template."""
    template = RecurringTemplate(
        id=new_task_id(),
        title=title,
        frequency=frequency,
        time=time,
        enabled=enabled,
        priority=priority,
        reminder_time=reminder_time,
        start_date=start_date,
        week_days=list(week_days or []),
        month_days=list(month_days or []),
        interval_days=interval_days,
        remind_day_offsets=list(remind_day_offsets or []),
        created_at=now,
        updated_at=now,
    )
    parse_rule(template)
    with store.transaction():
        return store.create_template(template)


def update_template(store: TaskStore, template_id: str, now: datetime, **changes) -> RecurringTemplate:
    """
    Edit a template.

    Moving the time-of-day later than now on a day that already generated
    clears lastGenerated, so today's occurrence can still be made.
    """
    with store.transaction():
        current = _require_template(store, template_id)
        updated = replace(current, **changes, updated_at=now)
        parse_rule(updated)
        if should_reset_last_generated(current, updated, now):
            updated = replace(updated, last_generated=None)
            logger.info(f"Template {template_id} time moved to {updated.time}, re-armed for today")
        return store.update_template(updated)


def set_template_enabled(
    store: TaskStore, template_id: str, enabled: bool, now: datetime
) -> RecurringTemplate:
    with store.transaction():
        current = _require_template(store, template_id)
        return store.update_template(replace(current, enabled=enabled, updated_at=now))


def delete_template(store: TaskStore, template_id: str) -> None:
    """Delete a template. Tasks it generated are kept."""
    with store.transaction():
        if not store.delete_template(template_id):
            raise TemplateNotFoundError(template_id)


# ============== Continuous tasks ==============


def _generate_child(store: TaskStore, parent_id: str, today: date, now: datetime) -> GenerationResult:
    with store.transaction():
        parent = store.get_task(parent_id)
        if parent is None:
            return GenerationResult()
        if not continuous.is_eligible(parent, today):
            logger.debug(f"Continuous parent {parent_id} not eligible for {today}")
            return GenerationResult()

        existing = [t for t in store.find_children(parent.id, today) if continuous.is_child_for(t, parent, today)]
        if existing:
            store.update_task(replace(parent, last_generated_date=today))
            logger.debug(f"Continuous parent {parent_id} already has a child for {today}")
            return GenerationResult()

        child = _insert_task(store, continuous.build_child(parent, today, now))
        day_subtasks = continuous.subtasks_for_day(store.list_subtasks(parent.id), today)
        for subtask in continuous.copy_subtasks(day_subtasks, child.id):
            store.create_subtask(subtask)
        store.update_task(replace(parent, last_generated_date=today))

        terminal = " (terminal)" if today == parent.due_date else ""
        logger.info(
            f"Generated child {child.id} '{child.title}'{terminal} with "
            f"{len(day_subtasks)} subtask(s) from parent {parent.id}"
        )
        return GenerationResult(generated=1, source_ids=[parent.id], task_ids=[child.id])


def check_and_generate_continuous_tasks(
    store: TaskStore,
    today: date,
    now: datetime,
    parent_id: str | None = None,
) -> GenerationResult:
    """
    Make sure each continuous parent has its child for `today`.

    With parent_id only that parent is checked. Unknown or non-continuous ids
    are tolerated and simply generate nothing.
    """
    if parent_id is not None:
        parent = store.get_task(parent_id)
        if parent is None:
            logger.warning(f"Continuous parent {parent_id} not found, skipping")
            return GenerationResult()
        parent_ids = [parent.id]
    else:
        parent_ids = [p.id for p in store.list_continuous_parents()]

    result = GenerationResult()
    for pid in parent_ids:
        result.merge(_generate_child(store, pid, today, now))
    return result
