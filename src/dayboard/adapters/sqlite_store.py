"""SQLite task store adapter."""

import contextlib
import json
import logging
import sqlite3
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from dayboard.core.rank import initial_rank, unique_rank
from dayboard.core.recurrence import RecurringTemplate
from dayboard.core.tasks import Priority, Status, Subtask, Task
from dayboard.errors import TaskNotFoundError, TemplateNotFoundError

logger = logging.getLogger(__name__)

TASK_COLUMNS = {
    "id": "TEXT PRIMARY KEY",
    "title": "TEXT NOT NULL",
    "description": "TEXT",
    "status": "TEXT NOT NULL DEFAULT 'todo'",
    "priority": "TEXT NOT NULL DEFAULT 'medium'",
    "is_pinned": "INTEGER NOT NULL DEFAULT 0",
    "start_date": "TEXT",
    "due_date": "TEXT",
    "completed_at": "TEXT",
    "panel_id": "TEXT",
    "rank": "TEXT NOT NULL DEFAULT ''",
    "auto_generate_daily": "INTEGER NOT NULL DEFAULT 0",
    "parent_id": "TEXT",
    "last_generated_date": "TEXT",
    "reminder_time": "TEXT",
    "reminder_date": "TEXT",
    "created_at": "TEXT NOT NULL DEFAULT ''",
    "updated_at": "TEXT NOT NULL DEFAULT ''",
}

SUBTASK_COLUMNS = {
    "id": "TEXT PRIMARY KEY",
    "task_id": "TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE",
    "title": "TEXT NOT NULL",
    "description": "TEXT",
    "completed": "INTEGER NOT NULL DEFAULT 0",
    "sort_order": "INTEGER NOT NULL DEFAULT 0",
    "start_date": "TEXT",
    "due_date": "TEXT",
}

TEMPLATE_COLUMNS = {
    "id": "TEXT PRIMARY KEY",
    "title": "TEXT NOT NULL",
    "frequency": "TEXT NOT NULL",
    "time": "TEXT NOT NULL DEFAULT ''",
    "reminder_time": "TEXT",
    "priority": "TEXT NOT NULL DEFAULT 'medium'",
    "enabled": "INTEGER NOT NULL DEFAULT 1",
    "last_generated": "TEXT",
    "start_date": "TEXT",
    "week_days": "TEXT",
    "month_days": "TEXT",
    "interval_days": "INTEGER",
    "remind_day_offsets": "TEXT",
    "created_at": "TEXT",
    "updated_at": "TEXT",
}


def _date_to_str(value: date | None) -> str | None:
    return value.isoformat() if value else None


def _str_to_date(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(value.split("T")[0])


def _str_to_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _list_to_str(values: list[int]) -> str | None:
    return json.dumps(values) if values else None


def _str_to_list(value: str | None) -> list[int]:
    if not value:
        return []
    try:
        data = json.loads(value)
    except json.JSONDecodeError:
        logger.warning(f"Ignoring malformed list column value: {value!r}")
        return []
    return [int(v) for v in data] if isinstance(data, list) else []


class SQLiteTaskStore:
    """
    SQLite-backed task store.

    Implements TaskStore protocol. The schema is created if missing and
    missing columns are added on open, so older databases keep working.

    One connection is held for the store's lifetime, since transaction() needs
    every statement of an operation on the same connection. The outermost
    transaction takes SQLite's write lock up front (BEGIN IMMEDIATE), so a
    check-then-create inside it cannot race a writer in another process.
    """

    def __init__(self, db_path: str | Path = "dayboard.sqlite3", timeout: float = 30.0):
        self.db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(db_path), timeout=timeout, check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        with contextlib.suppress(sqlite3.DatabaseError):
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._lock = threading.RLock()
        self._depth = 0
        self._ensure_schema()
        logger.info(f"Task store ready at {self.db_path}")

    def close(self) -> None:
        self._conn.close()

    # ---- schema ----

    def _ensure_table(self, table: str, columns: dict[str, str]) -> None:
        cur = self._conn.cursor()
        decls = ",\n".join(f"{name} {decl}" for name, decl in columns.items())
        cur.execute(f"CREATE TABLE IF NOT EXISTS {table} (\n{decls}\n)")

        cur.execute(f"PRAGMA table_info({table})")
        existing = {row["name"] for row in cur.fetchall()}
        for name, decl in columns.items():
            if name in existing:
                continue
            # ALTER TABLE cannot add key or reference constraints, nor NOT NULL without a default.
            decl = decl.replace("PRIMARY KEY", "").split(" REFERENCES ")[0]
            if "DEFAULT" not in decl:
                decl = decl.replace("NOT NULL", "")
            cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
            logger.info(f"Migration: added column {table}.{name}")

    def _ensure_schema(self) -> None:
        with self.transaction():
            self._ensure_table("tasks", TASK_COLUMNS)
            self._ensure_table("subtasks", SUBTASK_COLUMNS)
            self._ensure_table("recurring_templates", TEMPLATE_COLUMNS)
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_parent_due ON tasks(parent_id, due_date)"
            )
            self._conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_panel ON tasks(panel_id)")
            self._conn.execute("CREATE INDEX IF NOT EXISTS idx_subtasks_task ON subtasks(task_id)")
            self._backfill_ranks()

    def _backfill_ranks(self) -> None:
        """Give rows stored without a rank (older databases) one from their creation time."""
        rows = self._conn.execute(
            "SELECT id, created_at FROM tasks WHERE rank IS NULL OR rank = '' ORDER BY created_at, id"
        ).fetchall()
        if not rows:
            return
        taken = {r["rank"] for r in self._conn.execute("SELECT rank FROM tasks WHERE rank != ''")}
        for row in rows:
            created = _str_to_datetime(row["created_at"]) or datetime.fromtimestamp(0, timezone.utc)
            rank = unique_rank(initial_rank(created), taken)
            taken.add(rank)
            self._conn.execute("UPDATE tasks SET rank = ? WHERE id = ?", (rank, row["id"]))
        logger.info(f"Migration: assigned ranks to {len(rows)} task(s)")

    # ---- transactions ----

    @contextlib.contextmanager
    def transaction(self) -> Iterator["SQLiteTaskStore"]:
        """
        All-or-nothing unit of work.

        Nested calls join the outermost transaction; only the outermost one
        commits, and any exception rolls back everything written inside it.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            self._conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self
            except BaseException:
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")
            finally:
                self._depth = 0

    def _write(self, sql: str, params: Any = ()) -> sqlite3.Cursor:
        with self.transaction():
            return self._conn.execute(sql, params)

    def _query(self, sql: str, params: Any = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    # ---- row mapping ----

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            status=Status(row["status"] or "todo"),
            priority=Priority(row["priority"] or "medium"),
            is_pinned=bool(row["is_pinned"]),
            start_date=_str_to_date(row["start_date"]),
            due_date=_str_to_date(row["due_date"]),
            completed_at=_str_to_datetime(row["completed_at"]),
            panel_id=row["panel_id"],
            rank=row["rank"] or "",
            auto_generate_daily=bool(row["auto_generate_daily"]),
            parent_id=row["parent_id"],
            last_generated_date=_str_to_date(row["last_generated_date"]),
            reminder_time=row["reminder_time"],
            reminder_date=_str_to_date(row["reminder_date"]),
            created_at=_str_to_datetime(row["created_at"]),
            updated_at=_str_to_datetime(row["updated_at"]),
        )

    @staticmethod
    def _task_params(task: Task) -> dict[str, Any]:
        return {
            "id": task.id,
            "title": task.title,
            "description": task.description,
            "status": task.status.value,
            "priority": task.priority.value,
            "is_pinned": int(task.is_pinned),
            "start_date": _date_to_str(task.start_date),
            "due_date": _date_to_str(task.due_date),
            "completed_at": task.completed_at.isoformat() if task.completed_at else None,
            "panel_id": task.panel_id,
            "rank": task.rank,
            "auto_generate_daily": int(task.auto_generate_daily),
            "parent_id": task.parent_id,
            "last_generated_date": _date_to_str(task.last_generated_date),
            "reminder_time": task.reminder_time,
            "reminder_date": _date_to_str(task.reminder_date),
            "created_at": task.created_at.isoformat() if task.created_at else "",
            "updated_at": task.updated_at.isoformat() if task.updated_at else "",
        }

    @staticmethod
    def _row_to_subtask(row: sqlite3.Row) -> Subtask:
        return Subtask(
            id=row["id"],
            task_id=row["task_id"],
            title=row["title"],
            description=row["description"],
            completed=bool(row["completed"]),
            order=int(row["sort_order"] or 0),
            start_date=_str_to_date(row["start_date"]),
            due_date=_str_to_date(row["due_date"]),
        )

    @staticmethod
    def _subtask_params(subtask: Subtask) -> dict[str, Any]:
        return {
            "id": subtask.id,
            "task_id": subtask.task_id,
            "title": subtask.title,
            "description": subtask.description,
            "completed": int(subtask.completed),
            "sort_order": subtask.order,
            "start_date": _date_to_str(subtask.start_date),
            "due_date": _date_to_str(subtask.due_date),
        }

    @staticmethod
    def _row_to_template(row: sqlite3.Row) -> RecurringTemplate:
        return RecurringTemplate(
            id=row["id"],
            title=row["title"],
            frequency=row["frequency"],
            time=row["time"] or "",
            reminder_time=row["reminder_time"],
            priority=Priority(row["priority"] or "medium"),
            enabled=bool(row["enabled"]),
            last_generated=_str_to_date(row["last_generated"]),
            start_date=_str_to_date(row["start_date"]),
            week_days=_str_to_list(row["week_days"]),
            month_days=_str_to_list(row["month_days"]),
            interval_days=row["interval_days"],
            remind_day_offsets=_str_to_list(row["remind_day_offsets"]),
            created_at=_str_to_datetime(row["created_at"]),
            updated_at=_str_to_datetime(row["updated_at"]),
        )

    @staticmethod
    def _template_params(template: RecurringTemplate) -> dict[str, Any]:
        return {
            "id": template.id,
            "title": template.title,
            "frequency": template.frequency,
            "time": template.time or "",
            "reminder_time": template.reminder_time,
            "priority": template.priority.value,
            "enabled": int(template.enabled),
            "last_generated": _date_to_str(template.last_generated),
            "start_date": _date_to_str(template.start_date),
            "week_days": _list_to_str(template.week_days),
            "month_days": _list_to_str(template.month_days),
            "interval_days": template.interval_days,
            "remind_day_offsets": _list_to_str(template.remind_day_offsets),
            "created_at": template.created_at.isoformat() if template.created_at else None,
            "updated_at": template.updated_at.isoformat() if template.updated_at else None,
        }

    @staticmethod
    def _insert_sql(table: str, params: dict[str, Any]) -> str:
        names = ", ".join(params)
        values = ", ".join(f":{name}" for name in params)
        return f"INSERT INTO {table} ({names}) VALUES ({values})"

    @staticmethod
    def _update_sql(table: str, params: dict[str, Any]) -> str:
        assignments = ", ".join(f"{name} = :{name}" for name in params if name != "id")
        return f"UPDATE {table} SET {assignments} WHERE id = :id"

    # ---- tasks ----

    def get_task(self, task_id: str) -> Task | None:
        rows = self._query("SELECT * FROM tasks WHERE id = ?", (task_id,))
        return self._row_to_task(rows[0]) if rows else None

    def list_tasks(
        self,
        panel_id: str | None = None,
        status: Status | None = None,
        all_panels: bool = False,
    ) -> list[Task]:
        clauses: list[str] = []
        params: list[Any] = []

        if not all_panels:
            if panel_id is None:
                clauses.append("panel_id IS NULL")
            else:
                clauses.append("panel_id = ?")
                params.append(panel_id)

        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._query(f"SELECT * FROM tasks {where} ORDER BY rank ASC", params)
        return [self._row_to_task(r) for r in rows]

    def create_task(self, task: Task) -> Task:
        params = self._task_params(task)
        self._write(self._insert_sql("tasks", params), params)
        logger.debug(f"Task created id={task.id} parent={task.parent_id} due={task.due_date}")
        return task

    def update_task(self, task: Task) -> Task:
        params = self._task_params(task)
        cur = self._write(self._update_sql("tasks", params), params)
        if cur.rowcount == 0:
            raise TaskNotFoundError(task.id)
        return task

    def delete_task(self, task_id: str) -> bool:
        with self.transaction():
            self._conn.execute("DELETE FROM subtasks WHERE task_id = ?", (task_id,))
            cur = self._conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            return cur.rowcount > 0

    def find_children(self, parent_id: str, due_date: date) -> list[Task]:
        rows = self._query(
            "SELECT * FROM tasks WHERE parent_id = ? AND due_date = ? ORDER BY rank ASC",
            (parent_id, due_date.isoformat()),
        )
        return [self._row_to_task(r) for r in rows]

    def list_continuous_parents(self) -> list[Task]:
        rows = self._query("SELECT * FROM tasks WHERE auto_generate_daily = 1 ORDER BY rank ASC")
        return [self._row_to_task(r) for r in rows]

    # ---- subtasks ----

    def list_subtasks(self, task_id: str) -> list[Subtask]:
        rows = self._query(
            "SELECT * FROM subtasks WHERE task_id = ? ORDER BY sort_order ASC", (task_id,)
        )
        return [self._row_to_subtask(r) for r in rows]

    def create_subtask(self, subtask: Subtask) -> Subtask:
        params = self._subtask_params(subtask)
        self._write(self._insert_sql("subtasks", params), params)
        return subtask

    def update_subtask(self, subtask: Subtask) -> Subtask:
        params = self._subtask_params(subtask)
        self._write(self._update_sql("subtasks", params), params)
        return subtask

    def delete_subtask(self, subtask_id: str) -> bool:
        cur = self._write("DELETE FROM subtasks WHERE id = ?", (subtask_id,))
        return cur.rowcount > 0

    # ---- recurring templates ----

    def get_template(self, template_id: str) -> RecurringTemplate | None:
        rows = self._query("SELECT * FROM recurring_templates WHERE id = ?", (template_id,))
        return self._row_to_template(rows[0]) if rows else None

    def list_templates(self, enabled_only: bool = False) -> list[RecurringTemplate]:
        where = "WHERE enabled = 1" if enabled_only else ""
        rows = self._query(f"SELECT * FROM recurring_templates {where} ORDER BY created_at DESC")
        return [self._row_to_template(r) for r in rows]

    def create_template(self, template: RecurringTemplate) -> RecurringTemplate:
        params = self._template_params(template)
        self._write(self._insert_sql("recurring_templates", params), params)
        return template

    def update_template(self, template: RecurringTemplate) -> RecurringTemplate:
        params = self._template_params(template)
        cur = self._write(self._update_sql("recurring_templates", params), params)
        if cur.rowcount == 0:
            raise TemplateNotFoundError(template.id)
        return template

    def delete_template(self, template_id: str) -> bool:
        cur = self._write("DELETE FROM recurring_templates WHERE id = ?", (template_id,))
        return cur.rowcount > 0
