"""Holiday calendar adapter - yearly JSON files plus an HTTP fetcher."""

import json
import logging
from datetime import date
from pathlib import Path

import requests

from dayboard.errors import HolidayDataError

logger = logging.getLogger(__name__)

WEEKEND = 1
STATUTORY_HOLIDAY = 2
MAKEUP_WORKDAY = 3

REQUEST_TIMEOUT = 30


def holiday_file(holiday_dir: Path, year: int) -> Path:
    """Path of the data file for `year`."""
    return holiday_dir / f"{year}-holiday.json"


class FileHolidayCalendar:
    """
    Holiday calendar backed by `<year>-holiday.json` files.

    Implements HolidayCalendar protocol. Each year is loaded once and cached;
    a missing or unreadable year simply has no special days, so callers fall
    back to the plain Monday-Friday week.
    """

    def __init__(self, holiday_dir: Path):
        self.holiday_dir = Path(holiday_dir)
        self._years: dict[int, dict[str, int]] = {}

    def _load_year(self, year: int) -> dict[str, int]:
        if year in self._years:
            return self._years[year]

        path = holiday_file(self.holiday_dir, year)
        types: dict[str, int] = {}
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                for day, entry in (data.get("type") or {}).items():
                    types[day] = int(entry.get("type", 0))
                logger.debug(f"Loaded {len(types)} holiday entries for {year}")
            except (OSError, ValueError, AttributeError, TypeError) as e:
                logger.warning(f"Could not read holiday data {path}: {e}")
                types = {}

        self._years[year] = types
        return types

    def _day_type(self, day: date) -> int | None:
        return self._load_year(day.year).get(day.isoformat())

    def is_rest_day(self, day: date) -> bool:
        return self._day_type(day) in (WEEKEND, STATUTORY_HOLIDAY)

    def is_makeup_workday(self, day: date) -> bool:
        return self._day_type(day) == MAKEUP_WORKDAY

    def invalidate(self, year: int | None = None) -> None:
        """Drop cached data so the next lookup re-reads the file."""
        if year is None:
            self._years.clear()
        else:
            self._years.pop(year, None)


class HolidayDataFetcher:
    """Downloads yearly holiday data into the holiday directory."""

    def __init__(self, url_template: str, holiday_dir: Path):
        self.url_template = url_template
        self.holiday_dir = Path(holiday_dir)
        self._session = requests.Session()

    def fetch(self, year: int) -> Path:
        """Fetch one year and write it to disk. Returns the written path."""
        url = self.url_template.format(year=year)
        try:
            resp = self._session.get(url, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise HolidayDataError(f"Fetching holidays for {year} failed: {e}") from e

        if resp.status_code != 200:
            raise HolidayDataError(
                f"Fetching holidays for {year} failed: HTTP {resp.status_code}"
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise HolidayDataError(f"Holiday data for {year} is not JSON") from e

        if not isinstance(data, dict):
            raise HolidayDataError(f"Holiday data for {year} has unexpected shape")
        if data.get("code", 0) != 0:
            raise HolidayDataError(f"Holiday service returned code {data['code']} for {year}")

        self.holiday_dir.mkdir(parents=True, exist_ok=True)
        path = holiday_file(self.holiday_dir, year)
        path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        logger.info(f"Saved holiday data for {year} to {path}")
        return path

    def fetch_years(self, years: list[int]) -> list[Path]:
        """Fetch several years; a failing year is logged and skipped."""
        paths = []
        for year in years:
            try:
                paths.append(self.fetch(year))
            except HolidayDataError as e:
                logger.error(str(e))
        return paths
