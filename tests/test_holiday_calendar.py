"""Tests for the holiday calendar adapter."""

import json
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
import requests

from dayboard.adapters.holiday_files import FileHolidayCalendar, HolidayDataFetcher, holiday_file
from dayboard.errors import HolidayDataError

SAMPLE = {
    "code": 0,
    "type": {
        "2026-01-01": {"type": 2, "name": "New Year's Day", "week": 4},
        "2026-01-03": {"type": 1, "name": "Saturday", "week": 6},
        "2026-01-04": {"type": 3, "name": "Makeup workday", "week": 7},
    },
}


@pytest.fixture
def holiday_dir(tmp_path):
    path = tmp_path / "holiday"
    path.mkdir()
    (path / "2026-holiday.json").write_text(json.dumps(SAMPLE))
    return path


class TestFileHolidayCalendar:
    def test_statutory_holiday_is_rest_day(self, holiday_dir):
        calendar = FileHolidayCalendar(holiday_dir)
        assert calendar.is_rest_day(date(2026, 1, 1))
        assert not calendar.is_makeup_workday(date(2026, 1, 1))

    def test_weekend_is_rest_day(self, holiday_dir):
        assert FileHolidayCalendar(holiday_dir).is_rest_day(date(2026, 1, 3))

    def test_makeup_workday(self, holiday_dir):
        calendar = FileHolidayCalendar(holiday_dir)
        assert calendar.is_makeup_workday(date(2026, 1, 4))
        assert not calendar.is_rest_day(date(2026, 1, 4))

    def test_unlisted_day(self, holiday_dir):
        calendar = FileHolidayCalendar(holiday_dir)
        assert not calendar.is_rest_day(date(2026, 1, 2))
        assert not calendar.is_makeup_workday(date(2026, 1, 2))

    def test_missing_year_has_no_special_days(self, holiday_dir):
        assert not FileHolidayCalendar(holiday_dir).is_rest_day(date(2027, 1, 1))

    def test_unreadable_file_logged(self, holiday_dir, caplog):
        (holiday_dir / "2025-holiday.json").write_text("{not json")
        calendar = FileHolidayCalendar(holiday_dir)

        assert not calendar.is_rest_day(date(2025, 1, 1))
        assert "Could not read holiday data" in caplog.text

    def test_caches_and_invalidates(self, holiday_dir):
        calendar = FileHolidayCalendar(holiday_dir)
        assert calendar.is_rest_day(date(2026, 1, 1))

        (holiday_dir / "2026-holiday.json").write_text(json.dumps({"type": {}}))
        assert calendar.is_rest_day(date(2026, 1, 1))

        calendar.invalidate(2026)
        assert not calendar.is_rest_day(date(2026, 1, 1))


def make_response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else SAMPLE
    return resp


class TestHolidayDataFetcher:
    URL = "https://example.test/holiday/{year}"

    @patch("dayboard.adapters.holiday_files.requests.Session")
    def test_fetch_writes_file(self, mock_session_cls, tmp_path):
        mock_session = MagicMock()
        mock_session.get.return_value = make_response()
        mock_session_cls.return_value = mock_session

        path = HolidayDataFetcher(self.URL, tmp_path / "holiday").fetch(2026)

        mock_session.get.assert_called_once_with("https://example.test/holiday/2026", timeout=30)
        assert path == holiday_file(tmp_path / "holiday", 2026)
        assert json.loads(path.read_text())["type"]["2026-01-04"]["type"] == 3

    @patch("dayboard.adapters.holiday_files.requests.Session")
    def test_non_200_raises(self, mock_session_cls, tmp_path):
        mock_session_cls.return_value.get.return_value = make_response(status_code=503)

        with pytest.raises(HolidayDataError, match="HTTP 503"):
            HolidayDataFetcher(self.URL, tmp_path).fetch(2026)

    @patch("dayboard.adapters.holiday_files.requests.Session")
    def test_error_code_raises(self, mock_session_cls, tmp_path):
        mock_session_cls.return_value.get.return_value = make_response(payload={"code": -1})

        with pytest.raises(HolidayDataError, match="code -1"):
            HolidayDataFetcher(self.URL, tmp_path).fetch(2026)

    @patch("dayboard.adapters.holiday_files.requests.Session")
    def test_connection_error_raises(self, mock_session_cls, tmp_path):
        mock_session_cls.return_value.get.side_effect = requests.ConnectionError("offline")

        with pytest.raises(HolidayDataError):
            HolidayDataFetcher(self.URL, tmp_path).fetch(2026)

    @patch("dayboard.adapters.holiday_files.requests.Session")
    def test_fetch_years_skips_failures(self, mock_session_cls, tmp_path):
        mock_session_cls.return_value.get.side_effect = [make_response(status_code=404), make_response()]

        paths = HolidayDataFetcher(self.URL, tmp_path).fetch_years([2025, 2026])

        assert paths == [holiday_file(tmp_path, 2026)]
