"""Tests for the background service wiring."""

from datetime import date, datetime
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from dayboard.adapters.sqlite_store import SQLiteTaskStore
from dayboard.config import Config
from dayboard.service import prefetch_holidays, run_checks, setup_scheduler
from dayboard.workflows import create_template

TZ = ZoneInfo("Asia/Shanghai")
NOW = datetime(2026, 1, 2, 9, 0, tzinfo=TZ)


class FixedClock:
    def now(self):
        return NOW

    def today(self):
        return NOW.date()


@pytest.fixture
def store(tmp_path):
    s = SQLiteTaskStore(tmp_path / "dayboard.sqlite3")
    yield s
    s.close()


@pytest.fixture
def calendar():
    cal = MagicMock()
    cal.is_rest_day.return_value = False
    cal.is_makeup_workday.return_value = False
    return cal


class TestRunChecks:
    def test_runs_both_checks(self, store, calendar):
        create_template(store, "Water", "daily", NOW)
        result = run_checks(store, calendar, FixedClock())
        assert result.generated == 1

    @patch("dayboard.service.check_and_generate_continuous_tasks")
    @patch("dayboard.service.check_and_generate_recurring_tasks")
    def test_failing_check_is_logged(self, mock_recurring, mock_continuous, store, calendar, caplog):
        mock_recurring.side_effect = RuntimeError("database is locked")
        mock_continuous.return_value.generated = 0

        run_checks(store, calendar, FixedClock())

        mock_continuous.assert_called_once_with(store, NOW.date(), NOW)
        assert "Recurring task check failed: database is locked" in caplog.text

    @patch("dayboard.service.check_and_generate_continuous_tasks")
    @patch("dayboard.service.check_and_generate_recurring_tasks")
    def test_both_checks_use_one_instant(self, mock_recurring, mock_continuous, store, calendar):
        clock = MagicMock()
        clock.now.return_value = datetime(2026, 1, 2, 23, 59, 59, tzinfo=TZ)
        # Already past midnight by the time today() would be read.
        clock.today.return_value = date(2026, 1, 3)
        mock_recurring.return_value.generated = 0
        mock_continuous.return_value.generated = 0

        run_checks(store, calendar, clock)

        mock_recurring.assert_called_once_with(store, calendar, clock.now.return_value)
        mock_continuous.assert_called_once_with(store, date(2026, 1, 2), clock.now.return_value)


class TestPrefetchHolidays:
    def test_fetches_this_and_next_year(self):
        fetcher = MagicMock()
        fetcher.fetch_years.return_value = []
        calendar = MagicMock()

        prefetch_holidays(fetcher, calendar, date(2026, 10, 18))

        fetcher.fetch_years.assert_called_once_with([2026, 2027])
        assert calendar.invalidate.call_count == 2


class TestSetupScheduler:
    def test_jobs(self, store, calendar):
        scheduler = setup_scheduler(Config(check_interval_minutes=5), store, calendar, FixedClock(), MagicMock())
        assert {job.id for job in scheduler.get_jobs()} == {"generation_checks", "holiday_prefetch"}

    def test_invalid_prefetch_time_skips_job(self, store, calendar):
        config = Config(holiday_prefetch_time="late")
        scheduler = setup_scheduler(config, store, calendar, FixedClock(), MagicMock())
        assert [job.id for job in scheduler.get_jobs()] == ["generation_checks"]
