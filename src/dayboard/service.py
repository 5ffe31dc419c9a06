"""Background service - owns the task store and runs the generation checks."""

import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .adapters import FileHolidayCalendar, HolidayDataFetcher, SQLiteTaskStore, SystemClock
from .config import Config, load_config
from .core.recurrence import parse_hhmm
from .ports import Clock, HolidayCalendar, TaskStore
from .workflows import (
    GenerationResult,
    check_and_generate_continuous_tasks,
    check_and_generate_recurring_tasks,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def run_checks(store: TaskStore, calendar: HolidayCalendar, clock: Clock) -> GenerationResult:
    """Run the recurring and continuous checks once; a failing check is logged."""
    now = clock.now()
    # Both checks see the same local date, even across midnight.
    today = now.date()
    result = GenerationResult()

    try:
        result.merge(check_and_generate_recurring_tasks(store, calendar, now))
    except Exception as e:
        logger.error(f"Recurring task check failed: {e}")

    try:
        result.merge(check_and_generate_continuous_tasks(store, today, now))
    except Exception as e:
        logger.error(f"Continuous task check failed: {e}")

    if result.generated:
        logger.info(f"Check generated {result.generated} task(s)")
    return result


def prefetch_holidays(
    fetcher: HolidayDataFetcher, calendar: FileHolidayCalendar, today: date
) -> None:
    """Refresh holiday data for this year and next."""
    years = [today.year, today.year + 1]
    for path in fetcher.fetch_years(years):
        logger.debug(f"Holiday data refreshed: {path}")
    for year in years:
        calendar.invalidate(year)


def setup_scheduler(
    config: Config,
    store: TaskStore,
    calendar: FileHolidayCalendar,
    clock: Clock,
    fetcher: HolidayDataFetcher,
) -> BlockingScheduler:
    """Set up the periodic checks and the daily holiday prefetch."""
    scheduler = BlockingScheduler(
        timezone=config.timezone,
        # One worker keeps every store access on a single thread, in order.
        executors={"default": ThreadPoolExecutor(1)},
        job_defaults={"coalesce": True, "max_instances": 1},
    )

    scheduler.add_job(
        run_checks,
        IntervalTrigger(minutes=config.check_interval_minutes),
        args=[store, calendar, clock],
        id="generation_checks",
        next_run_time=datetime.now(ZoneInfo(config.timezone)),
    )
    logger.info(f"Scheduled generation checks every {config.check_interval_minutes} minute(s)")

    try:
        hour, minute = parse_hhmm(config.holiday_prefetch_time)
        scheduler.add_job(
            lambda: prefetch_holidays(fetcher, calendar, clock.today()),
            CronTrigger(hour=hour, minute=minute),
            id="holiday_prefetch",
        )
        logger.info(f"Scheduled holiday prefetch at {hour:02d}:{minute:02d}")
    except ValueError:
        logger.warning(f"Invalid holiday prefetch time format: {config.holiday_prefetch_time}")

    return scheduler


def run_service(config: Config | None = None) -> None:
    """Run the background service until interrupted."""
    config = config or load_config()
    logging.basicConfig(
        format=LOG_FORMAT,
        level=getattr(logging, config.log_level, logging.INFO),
    )

    store = SQLiteTaskStore(config.database_file)
    calendar = FileHolidayCalendar(config.holiday_path)
    clock = SystemClock(config.timezone)
    fetcher = HolidayDataFetcher(config.holiday_url, config.holiday_path)
    scheduler = setup_scheduler(config, store, calendar, clock, fetcher)

    logger.info(f"Starting Dayboard service (timezone {config.timezone})...")
    try:
        scheduler.start()
    finally:
        store.close()
        logger.info("Dayboard service stopped")
