"""Tests for the engine operations layer."""

from datetime import date, datetime, timedelta
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest

from dayboard.adapters.sqlite_store import SQLiteTaskStore
from dayboard.core.recurrence import RecurringTemplate
from dayboard.core.tasks import Priority, Status
from dayboard.core.transitions import Action
from dayboard.errors import InvalidTemplateError, TaskNotFoundError, TemplateNotFoundError
from dayboard.workflows import (
    GenerationResult,
    add_subtask,
    check_and_generate_recurring_tasks,
    compute_rank,
    create_task,
    create_template,
    delete_task,
    delete_template,
    generate_occurrence,
    move_task,
    set_template_enabled,
    transition,
    update_task,
    update_template,
)

TZ = ZoneInfo("Asia/Shanghai")
# 2026-01-03 is a Saturday.
SAT = date(2026, 1, 3)
NOW = datetime(2026, 1, 3, 10, 0, tzinfo=TZ)


class NoHolidays:
    def is_rest_day(self, day):
        return False

    def is_makeup_workday(self, day):
        return False


@pytest.fixture
def store(tmp_path):
    s = SQLiteTaskStore(tmp_path / "dayboard.sqlite3")
    yield s
    s.close()


@pytest.fixture
def calendar():
    return NoHolidays()


def add(store, title, minutes=0, **kwargs):
    now = NOW + timedelta(minutes=minutes)
    return create_task(store, title, now, now.date(), **kwargs)


class TestGenerationResult:
    def test_merge(self):
        result = GenerationResult(1, ["a"], ["t1"]).merge(GenerationResult(1, ["b"], ["t2"]))
        assert result.to_dict() == {"generated": 2, "source_ids": ["a", "b"], "task_ids": ["t1", "t2"]}


class TestCreateTask:
    def test_initial_rank_is_creation_time(self, store):
        task = add(store, "Buy milk")
        assert task.rank == "2026-01-03T02:00:00.000Z"
        assert store.get_task(task.id).title == "Buy milk"

    def test_rejects_due_before_start(self, store):
        with pytest.raises(ValueError):
            add(store, "Backwards", start_date=SAT, due_date=date(2026, 1, 1))

    def test_continuous_parent_generates_today(self, store):
        parent = add(store, "Stretch", auto_generate_daily=True, start_date=SAT, due_date=date(2026, 1, 10))
        children = store.find_children(parent.id, SAT)
        assert [c.title for c in children] == ["Stretch 01.03"]
        assert parent.last_generated_date == SAT

    def test_parent_and_child_get_distinct_ranks(self, store):
        parent = add(store, "Stretch", auto_generate_daily=True, start_date=SAT, due_date=date(2026, 1, 10))
        later = add(store, "Later", minutes=1)

        ranks = [t.rank for t in store.list_tasks()]
        [child] = store.find_children(parent.id, SAT)

        assert len(set(ranks)) == 3
        assert parent.rank < child.rank < later.rank


class TestUpdateTask:
    def test_edits_fields(self, store):
        task = add(store, "Draft")
        updated = update_task(store, task.id, NOW, SAT, title="Final", priority=Priority.HIGH)
        assert updated.title == "Final"
        assert updated.priority == Priority.HIGH
        assert updated.updated_at == NOW

    def test_refuses_managed_fields(self, store):
        task = add(store, "Draft")
        with pytest.raises(ValueError):
            update_task(store, task.id, NOW, SAT, status=Status.DONE)

    def test_missing_task(self, store):
        with pytest.raises(TaskNotFoundError):
            update_task(store, "ghost", NOW, SAT, title="x")

    def test_switching_flag_on_generates(self, store):
        task = add(store, "Journal", start_date=SAT, due_date=date(2026, 1, 31))
        assert store.find_children(task.id, SAT) == []

        update_task(store, task.id, NOW, SAT, auto_generate_daily=True)

        assert len(store.find_children(task.id, SAT)) == 1


class TestDeleteTask:
    def test_deletes(self, store):
        task = add(store, "Temp")
        delete_task(store, task.id)
        assert store.get_task(task.id) is None

    def test_missing(self, store):
        with pytest.raises(TaskNotFoundError):
            delete_task(store, "ghost")


class TestAddSubtask:
    def test_appends_in_order(self, store):
        task = add(store, "Trip")
        add_subtask(store, task.id, "Tickets")
        add_subtask(store, task.id, "Hotel", start_date=SAT)
        subtasks = store.list_subtasks(task.id)
        assert [(s.title, s.order) for s in subtasks] == [("Tickets", 0), ("Hotel", 1)]

    def test_missing_task(self, store):
        with pytest.raises(TaskNotFoundError):
            add_subtask(store, "ghost", "Step")


class TestTransition:
    def test_complete_writes(self, store):
        task = add(store, "Call mom")
        done = transition(store, task.id, Action.COMPLETE, NOW + timedelta(hours=1))
        stored = store.get_task(task.id)
        assert stored.status == Status.DONE
        assert stored.completed_at == done.completed_at

    def test_noop_does_not_touch_updated_at(self, store):
        task = add(store, "Call mom")
        transition(store, task.id, Action.REOPEN, NOW + timedelta(hours=1))
        assert store.get_task(task.id).updated_at == task.updated_at

    def test_missing_task(self, store):
        with pytest.raises(TaskNotFoundError):
            transition(store, "ghost", Action.COMPLETE, NOW)

    def test_pin_stacks_after_pinned(self, store):
        first = add(store, "First", minutes=0)
        second = add(store, "Second", minutes=1)
        third = add(store, "Third", minutes=2)

        transition(store, third.id, Action.PIN, NOW)
        pinned = transition(store, first.id, Action.PIN, NOW)

        assert pinned.rank > store.get_task(third.id).rank
        assert store.get_task(second.id).rank == second.rank

    def test_pin_siblings_are_same_panel(self, store):
        other = add(store, "Elsewhere", panel_id="work")
        transition(store, other.id, Action.PIN, NOW)
        task = add(store, "Here", minutes=1)

        pinned = transition(store, task.id, Action.PIN, NOW)

        assert pinned.rank == task.rank

    def test_complete_unpins(self, store):
        task = add(store, "Pinned")
        transition(store, task.id, Action.PIN, NOW)
        done = transition(store, task.id, Action.COMPLETE, NOW)
        assert done.is_pinned is False


class TestMoveTask:
    def test_moves_between_neighbours_only(self, store):
        a = add(store, "A", minutes=0)
        b = add(store, "B", minutes=1)
        c = add(store, "C", minutes=2)

        moved = move_task(store, c.id, NOW, after_id=a.id, before_id=b.id)

        assert a.rank < moved.rank < b.rank
        assert store.get_task(a.id).rank == a.rank
        assert store.get_task(b.id).rank == b.rank

    def test_move_to_top(self, store):
        a = add(store, "A", minutes=0)
        b = add(store, "B", minutes=1)
        moved = move_task(store, b.id, NOW, before_id=a.id)
        assert moved.rank < a.rank

    def test_missing_neighbour(self, store):
        a = add(store, "A")
        with pytest.raises(TaskNotFoundError):
            move_task(store, a.id, NOW, after_id="ghost")

    def test_compute_rank(self):
        assert "a" < compute_rank("a", "b") < "b"


class TestGenerateOccurrence:
    @pytest.fixture
    def weekend(self, store):
        return create_template(store, "Clean flat", "weekly", NOW, week_days=[6, 7])

    def test_generates_on_matching_day(self, store, calendar, weekend):
        result = generate_occurrence(store, weekend, SAT, calendar, NOW)

        assert result.generated == 1
        assert result.source_ids == [weekend.id]
        [task] = store.find_children(weekend.id, SAT)
        assert task.title == "Clean flat"
        assert store.get_template(weekend.id).last_generated == SAT

    def test_idempotent_same_day(self, store, calendar, weekend):
        generate_occurrence(store, weekend, SAT, calendar, NOW)
        # Passing the stale object still sees the stored lastGenerated.
        result = generate_occurrence(store, weekend, SAT, calendar, NOW)
        assert result.generated == 0
        assert len(store.find_children(weekend.id, SAT)) == 1

    def test_not_due_on_weekday(self, store, calendar, weekend):
        result = generate_occurrence(store, weekend, date(2026, 1, 5), calendar, NOW)
        assert result.generated == 0

    def test_existing_task_resyncs_last_generated(self, store, calendar, weekend):
        generate_occurrence(store, weekend, SAT, calendar, NOW)
        update_template(store, weekend.id, NOW, last_generated=None)

        result = generate_occurrence(store, weekend, SAT, calendar, NOW)

        assert result.generated == 0
        assert len(store.find_children(weekend.id, SAT)) == 1
        assert store.get_template(weekend.id).last_generated == SAT

    def test_disabled_skipped(self, store, calendar, weekend):
        set_template_enabled(store, weekend.id, False, NOW)
        assert generate_occurrence(store, weekend, SAT, calendar, NOW).generated == 0

    def test_invalid_template_raises(self, store, calendar):
        broken = RecurringTemplate(id="broken", title="Broken", frequency="lunar")
        store.create_template(broken)
        with pytest.raises(InvalidTemplateError):
            generate_occurrence(store, broken, SAT, calendar, NOW)

    def test_missing_template_raises(self, store, calendar):
        ghost = RecurringTemplate(id="ghost", title="Ghost", frequency="daily")
        with pytest.raises(TemplateNotFoundError):
            generate_occurrence(store, ghost, SAT, calendar, NOW)

    def test_failed_write_leaves_no_task(self, store, calendar, weekend):
        with patch.object(store, "update_template", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                generate_occurrence(store, weekend, SAT, calendar, NOW)
        assert store.find_children(weekend.id, SAT) == []
        assert store.get_template(weekend.id).last_generated is None


class TestCheckRecurring:
    def test_waits_for_time_of_day(self, store, calendar):
        template = create_template(store, "Evening walk", "daily", NOW, time="18:30")

        early = check_and_generate_recurring_tasks(store, calendar, NOW)
        late = check_and_generate_recurring_tasks(store, calendar, NOW.replace(hour=18, minute=30))

        assert early.generated == 0
        assert late.generated == 1
        assert late.source_ids == [template.id]

    def test_skips_invalid_templates(self, store, calendar):
        store.create_template(RecurringTemplate(id="broken", title="Broken", frequency="custom"))
        good = create_template(store, "Water", "daily", NOW)

        result = check_and_generate_recurring_tasks(store, calendar, NOW)

        assert result.source_ids == [good.id]

    def test_same_run_occurrences_get_distinct_ranks(self, store, calendar):
        create_template(store, "Water", "daily", NOW)
        create_template(store, "Vitamins", "daily", NOW)

        result = check_and_generate_recurring_tasks(store, calendar, NOW)

        ranks = [store.get_task(task_id).rank for task_id in result.task_ids]
        assert result.generated == 2
        assert len(set(ranks)) == 2
        assert all(rank.startswith("2026-01-03T02:00:00.000Z") for rank in ranks)

    def test_disabled_templates_not_listed(self, store, calendar):
        create_template(store, "Paused", "daily", NOW, enabled=False)
        assert check_and_generate_recurring_tasks(store, calendar, NOW).generated == 0


class TestTemplates:
    def test_create_validates(self, store):
        with pytest.raises(InvalidTemplateError):
            create_template(store, "Bad", "weekly", NOW)
        assert store.list_templates() == []

    def test_later_time_rearms_today(self, store, calendar):
        template = create_template(store, "Stand-up", "daily", NOW, time="09:00")
        check_and_generate_recurring_tasks(store, calendar, NOW)

        updated = update_template(store, template.id, NOW, time="11:00")

        assert updated.last_generated is None

    def test_earlier_time_keeps_guard(self, store, calendar):
        template = create_template(store, "Stand-up", "daily", NOW, time="09:00")
        check_and_generate_recurring_tasks(store, calendar, NOW)

        updated = update_template(store, template.id, NOW, time="08:00")

        assert updated.last_generated == SAT

    def test_update_validates(self, store):
        template = create_template(store, "Stand-up", "daily", NOW)
        with pytest.raises(InvalidTemplateError):
            update_template(store, template.id, NOW, frequency="weekly")
        assert store.get_template(template.id).frequency == "daily"

    def test_delete_keeps_generated_tasks(self, store, calendar):
        template = create_template(store, "Water", "daily", NOW)
        result = check_and_generate_recurring_tasks(store, calendar, NOW)

        delete_template(store, template.id)

        assert store.get_template(template.id) is None
        assert store.get_task(result.task_ids[0]) is not None

    def test_delete_missing(self, store):
        with pytest.raises(TemplateNotFoundError):
            delete_template(store, "ghost")
