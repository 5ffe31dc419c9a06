"""Dayboard CLI - personal task board."""

import json
import sys
from contextlib import contextmanager
from datetime import datetime

import click

from .adapters import FileHolidayCalendar, HolidayDataFetcher, SQLiteTaskStore, SystemClock
from .config import load_config
from .core.recurrence import Frequency
from .core.tasks import Priority, Status, Task, sort_tasks
from .core.transitions import Action
from .errors import DayboardError
from .workflows import (
    add_subtask,
    check_and_generate_continuous_tasks,
    check_and_generate_recurring_tasks,
    create_task,
    create_template,
    delete_task,
    delete_template,
    move_task,
    set_template_enabled,
    transition,
)

DATE = click.DateTime(formats=["%Y-%m-%d"])
PRIORITIES = click.Choice([p.value for p in Priority])


@contextmanager
def _session():
    """Open the configured store; yields (config, store, clock)."""
    config = load_config()
    store = SQLiteTaskStore(config.database_file)
    try:
        yield config, store, SystemClock(config.timezone)
    finally:
        store.close()


def _fail(e: Exception | str) -> None:
    click.echo(f"Error: {e}", err=True)
    sys.exit(1)


def _to_date(value: datetime | None):
    return value.date() if value else None


def _resolve_id(store: SQLiteTaskStore, task_id: str) -> str:
    """Accept a unique id prefix as shown by `dayboard list`."""
    if store.get_task(task_id):
        return task_id
    matches = [t.id for t in store.list_tasks(all_panels=True) if t.id.startswith(task_id)]
    return matches[0] if len(matches) == 1 else task_id


def _format_task(task: Task) -> str:
    check = "x" if task.is_done else " "
    pin = "*" if task.is_pinned else " "
    dates = ""
    if task.start_date and task.is_multi_day:
        dates = f" ({task.start_date} to {task.due_date})"
    elif task.due_date:
        dates = f" (due {task.due_date})"
    return f"[{check}]{pin} {task.id[:8]}  {task.title}{dates}"


@click.group()
@click.version_option()
def main():
    """Dayboard - personal task board."""
    pass


# ============== Tasks ==============


@main.command()
@click.argument("title")
@click.option("--description", "-m", default=None, help="Task description")
@click.option("--priority", "-p", type=PRIORITIES, default=Priority.MEDIUM.value, show_default=True)
@click.option("--start", "start_date", type=DATE, default=None, help="Start date (YYYY-MM-DD)")
@click.option("--due", "due_date", type=DATE, default=None, help="Due date (YYYY-MM-DD)")
@click.option("--panel", "panel_id", default=None, help="Panel id (default: today list)")
@click.option("--daily", is_flag=True, help="Generate one child task per day between start and due")
@click.option("--remind", "reminder_time", default=None, help="Reminder time (HH:MM)")
def add(title, description, priority, start_date, due_date, panel_id, daily, reminder_time):
    """Add a task."""
    try:
        with _session() as (_, store, clock):
            now = clock.now()
            task = create_task(
                store,
                title,
                now,
                now.date(),
                description=description,
                priority=Priority(priority),
                start_date=_to_date(start_date),
                due_date=_to_date(due_date),
                panel_id=panel_id,
                auto_generate_daily=daily,
                reminder_time=reminder_time,
            )
    except (DayboardError, ValueError) as e:
        _fail(e)
    click.echo(f"Added {task.id}")


@main.command("list")
@click.option("--panel", "panel_id", default=None, help="Panel id (default: today list)")
@click.option("--all", "all_panels", is_flag=True, help="List every panel")
@click.option("--status", type=click.Choice([s.value for s in Status]), default=None)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_tasks(panel_id, all_panels, status, as_json):
    """List tasks in display order."""
    with _session() as (_, store, _clock):
        tasks = sort_tasks(
            store.list_tasks(
                panel_id=panel_id,
                status=Status(status) if status else None,
                all_panels=all_panels,
            )
        )

    if as_json:
        click.echo(json.dumps([t.to_dict() for t in tasks], indent=2))
        return

    if not tasks:
        click.echo("No tasks.")
        return

    for task in tasks:
        click.echo(_format_task(task))


@main.command()
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(task_id, as_json):
    """Show a task with its subtasks."""
    with _session() as (_, store, _clock):
        task = store.get_task(_resolve_id(store, task_id))
        if task is None:
            _fail(f"Task {task_id} not found")
        subtasks = store.list_subtasks(task.id)

    if as_json:
        data = task.to_dict()
        data["subtasks"] = [
            {
                "id": s.id,
                "title": s.title,
                "completed": s.completed,
                "order": s.order,
                "start_date": s.start_date.isoformat() if s.start_date else None,
            }
            for s in subtasks
        ]
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(_format_task(task))
    click.echo(f"  id:       {task.id}")
    click.echo(f"  priority: {task.priority.value}")
    if task.description:
        click.echo(f"  {task.description}")
    for s in subtasks:
        day = f" [{s.start_date}]" if s.start_date else ""
        click.echo(f"  - [{'x' if s.completed else ' '}] {s.title}{day}")


@main.command()
@click.argument("task_id")
def delete(task_id):
    """Delete a task and its subtasks."""
    try:
        with _session() as (_, store, _clock):
            delete_task(store, _resolve_id(store, task_id))
    except DayboardError as e:
        _fail(e)
    click.echo("Deleted.")


def _transition_command(name: str, action: Action, help_text: str):
    @main.command(name, help=help_text)
    @click.argument("task_id")
    def command(task_id):
        try:
            with _session() as (_, store, clock):
                task = transition(store, _resolve_id(store, task_id), action, clock.now())
        except DayboardError as e:
            _fail(e)
        click.echo(_format_task(task))

    return command


done = _transition_command("done", Action.COMPLETE, "Mark a task done.")
reopen = _transition_command("reopen", Action.REOPEN, "Mark a task not done.")
pin = _transition_command("pin", Action.PIN, "Pin a task to the top of its list.")
unpin = _transition_command("unpin", Action.UNPIN, "Unpin a task.")


@main.command()
@click.argument("task_id")
@click.option("--after", "after_id", default=None, help="Task to place it after")
@click.option("--before", "before_id", default=None, help="Task to place it before")
def move(task_id, after_id, before_id):
    """Reorder a task between two neighbours."""
    try:
        with _session() as (_, store, clock):
            task = move_task(
                store,
                _resolve_id(store, task_id),
                clock.now(),
                after_id=_resolve_id(store, after_id) if after_id else None,
                before_id=_resolve_id(store, before_id) if before_id else None,
            )
    except DayboardError as e:
        _fail(e)
    click.echo(_format_task(task))


@main.command()
@click.argument("task_id")
@click.argument("title")
@click.option("--date", "day", type=DATE, default=None, help="Day this subtask belongs to")
@click.option("--description", "-m", default=None)
def subtask(task_id, title, day, description):
    """Add a subtask to a task."""
    try:
        with _session() as (_, store, _clock):
            created = add_subtask(
                store,
                _resolve_id(store, task_id),
                title,
                description=description,
                start_date=_to_date(day),
                due_date=_to_date(day),
            )
    except DayboardError as e:
        _fail(e)
    click.echo(f"Added subtask {created.id}")


# ============== Recurring templates ==============


@main.group()
def template():
    """Manage recurring task templates."""
    pass


@template.command("add")
@click.argument("title")
@click.option("--frequency", "-f", type=click.Choice([f.value for f in Frequency]), required=True)
@click.option("--time", "time_of_day", default="", help="Time of day (HH:MM)")
@click.option("--priority", "-p", type=PRIORITIES, default=Priority.MEDIUM.value, show_default=True)
@click.option("--remind", "reminder_time", default=None, help="Reminder time (HH:MM)")
@click.option("--week-day", "week_days", type=click.IntRange(1, 7), multiple=True, help="1=Mon .. 7=Sun")
@click.option("--month-day", "month_days", type=click.IntRange(1, 31), multiple=True)
@click.option("--start", "start_date", type=DATE, default=None, help="Start date (yearly/custom)")
@click.option("--interval", "interval_days", type=int, default=None, help="Cycle length in days (custom)")
@click.option("--remind-offset", "offsets", type=int, multiple=True, help="Reminder day within the cycle (custom)")
def template_add(title, frequency, time_of_day, priority, reminder_time, week_days, month_days,
                 start_date, interval_days, offsets):
    """Add a recurring template."""
    try:
        with _session() as (_, store, clock):
            created = create_template(
                store,
                title,
                frequency,
                clock.now(),
                time=time_of_day,
                priority=Priority(priority),
                reminder_time=reminder_time,
                start_date=_to_date(start_date),
                week_days=list(week_days),
                month_days=list(month_days),
                interval_days=interval_days,
                remind_day_offsets=list(offsets),
            )
    except DayboardError as e:
        _fail(e)
    click.echo(f"Added template {created.id}")


@template.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def template_list(as_json):
    """List recurring templates."""
    with _session() as (_, store, _clock):
        templates = store.list_templates()

    if as_json:
        click.echo(json.dumps([t.to_dict() for t in templates], indent=2))
        return

    if not templates:
        click.echo("No templates.")
        return

    for t in templates:
        state = "on " if t.enabled else "off"
        at = f" at {t.time}" if t.time else ""
        last = f" (last {t.last_generated})" if t.last_generated else ""
        click.echo(f"[{state}] {t.id[:8]}  {t.title} - {t.frequency}{at}{last}")


def _template_toggle(name: str, enabled: bool, help_text: str):
    @template.command(name, help=help_text)
    @click.argument("template_id")
    def command(template_id):
        try:
            with _session() as (_, store, clock):
                set_template_enabled(store, template_id, enabled, clock.now())
        except DayboardError as e:
            _fail(e)
        click.echo(f"Template {name}d.")

    return command


template_enable = _template_toggle("enable", True, "Enable a template.")
template_disable = _template_toggle("disable", False, "Disable a template.")


@template.command("delete")
@click.argument("template_id")
def template_delete(template_id):
    """Delete a template (generated tasks are kept)."""
    try:
        with _session() as (_, store, _clock):
            delete_template(store, template_id)
    except DayboardError as e:
        _fail(e)
    click.echo("Deleted.")


# ============== Generation ==============


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def check(as_json):
    """Run the recurring and continuous checks once."""
    try:
        with _session() as (config, store, clock):
            calendar = FileHolidayCalendar(config.holiday_path)
            now = clock.now()
            result = check_and_generate_recurring_tasks(store, calendar, now)
            result.merge(check_and_generate_continuous_tasks(store, now.date(), now))
    except DayboardError as e:
        _fail(e)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        click.echo(f"Generated {result.generated} task(s).")


@main.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def serve(debug: bool):
    """Run the background service."""
    from .service import run_service

    config = load_config()
    if debug:
        config.log_level = "DEBUG"

    click.echo("Starting Dayboard service...")
    click.echo("Press Ctrl+C to stop")
    try:
        run_service(config)
    except (KeyboardInterrupt, SystemExit):
        click.echo("\nService stopped.")


@main.group()
def holidays():
    """Manage holiday calendar data."""
    pass


@holidays.command("fetch")
@click.option("--year", "years", type=int, multiple=True, help="Year to fetch (default: this year and next)")
def holidays_fetch(years):
    """Download holiday data."""
    config = load_config()
    if not years:
        today = SystemClock(config.timezone).today()
        years = (today.year, today.year + 1)

    fetcher = HolidayDataFetcher(config.holiday_url, config.holiday_path)
    for year in years:
        try:
            path = fetcher.fetch(year)
        except DayboardError as e:
            _fail(e)
        click.echo(f"Saved {year} to {path}")


if __name__ == "__main__":
    main()
