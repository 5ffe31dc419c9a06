"""Configuration management for Dayboard."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DAYBOARD_HOME = Path(os.environ.get("DAYBOARD_HOME", Path.home() / "dayboard"))
CONFIG_FILE = DAYBOARD_HOME / "config" / "dayboard.conf"
DATA_DIR = DAYBOARD_HOME / "data"

DEFAULT_HOLIDAY_URL = "https://timor.tech/api/holiday/year/{year}?type=Y&week=Y"


@dataclass
class Config:
    """Dayboard configuration."""

    timezone: str = "Asia/Shanghai"
    database_path: str = ""
    holiday_dir: str = ""
    holiday_url: str = DEFAULT_HOLIDAY_URL
    check_interval_minutes: int = 1
    holiday_prefetch_time: str = "03:00"
    log_level: str = "INFO"

    @property
    def database_file(self) -> Path:
        if self.database_path:
            return Path(self.database_path).expanduser()
        return DATA_DIR / "dayboard.sqlite3"

    @property
    def holiday_path(self) -> Path:
        if self.holiday_dir:
            return Path(self.holiday_dir).expanduser()
        return DATA_DIR / "holiday"


def _unquote(value: str) -> str:
    """Strip surrounding quotes, or an inline comment from an unquoted value."""
    for quote in ('"', "'"):
        if value.startswith(quote):
            end_quote = value.find(quote, 1)
            return value[1:end_quote] if end_quote != -1 else value[1:]
    if "#" in value:
        value = value.split("#")[0].strip()
    return value


def _parse_int(key: str, value: str, default: int) -> int:
    try:
        number = int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {key}: {value!r}, using {default}")
        return default
    if number < 1:
        logger.warning(f"{key} must be positive, got {number}, using {default}")
        return default
    return number


def load_config(path: Path | None = None) -> Config:
    """Load configuration from dayboard.conf file."""
    config = Config()
    path = path or CONFIG_FILE

    if not path.exists():
        return config

    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip().lower()
        value = _unquote(value.strip())

        match key:
            case "timezone":
                config.timezone = value
            case "database_path":
                config.database_path = value
            case "holiday_dir":
                config.holiday_dir = value
            case "holiday_url":
                config.holiday_url = value
            case "check_interval_minutes":
                config.check_interval_minutes = _parse_int(key, value, config.check_interval_minutes)
            case "holiday_prefetch_time":
                config.holiday_prefetch_time = value
            case "log_level":
                config.log_level = value.upper()

    return config
