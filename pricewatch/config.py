"""Configuration loading for PriceWatch.

Settings live in a TOML file, by default ``~/.config/pricewatch/config.toml``.
Every key is optional; missing keys fall back to the defaults below.
"""

import os
from datetime import datetime, time
from pathlib import Path
from typing import Optional, Union

import pytz
import toml
from pydantic import BaseModel, Field, ValidationError, field_validator

from pricewatch.errors import ConfigError

CONFIG_DIR = Path.home() / ".config" / "pricewatch"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.toml"
DEFAULT_DB_PATH = CONFIG_DIR / "pricewatch.db"

CONFIG_ENV_VAR = "PRICEWATCH_CONFIG"

DEFAULT_SYMBOLS = ["AAPL", "MSFT", "GOOGL", "AMZN", "TSLA", "NVDA", "META"]

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class DatabaseSettings(BaseModel):
    path: Path = Field(default=DEFAULT_DB_PATH, description="SQLite database file")

    model_config = {"frozen": True}

    @field_validator("path")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return value.expanduser()


class SchedulerSettings(BaseModel):
    interval_seconds: float = Field(default=30.0, gt=0, description="Seconds between cycles")
    daily_reset: time = Field(default=time(0, 0), description="Daily stats reset time")
    timezone: str = Field(default="UTC", description="Timezone of the daily reset")
    single_flight: bool = Field(default=True, description="Skip fires while a job is running")
    max_workers: int = Field(default=1, ge=1, description="Threads used for alert evaluation")

    model_config = {"frozen": True}

    @field_validator("daily_reset", mode="before")
    @classmethod
    def _parse_time(cls, value):
        if isinstance(value, str):
            try:
                return datetime.strptime(value.strip(), "%H:%M").time()
            except ValueError:
                raise ValueError(f"daily_reset must be HH:MM, got {value!r}") from None
        return value

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"unknown timezone {value!r}")
        return value


class SourceSettings(BaseModel):
    symbols: list[str] = Field(default_factory=lambda: list(DEFAULT_SYMBOLS))
    volatility: float = Field(default=0.002, ge=0, description="Random walk step size")
    seed: Optional[int] = Field(default=None, description="Random seed")

    model_config = {"frozen": True}

    @field_validator("symbols")
    @classmethod
    def _upper(cls, value: list[str]) -> list[str]:
        return [s.strip().upper() for s in value if s.strip()]


class AlertSettings(BaseModel):
    owner: str = Field(default="local", min_length=1, description="Default owner for CLI commands")

    model_config = {"frozen": True}


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO")

    model_config = {"frozen": True}

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"level must be one of {', '.join(LOG_LEVELS)}")
        return level


class Settings(BaseModel):
    """All PriceWatch settings."""

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    source: SourceSettings = Field(default_factory=SourceSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = {"frozen": True}


def resolve_config_path(path: Optional[Union[str, Path]] = None) -> Path:
    """Pick the config file: explicit path, then env var, then default."""
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def load_config(path: Optional[Union[str, Path]] = None) -> Settings:
    """Load settings from a TOML file.

    Args:
        path: Optional config file path.

    Returns:
        Settings. Defaults are used if the file does not exist.

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values.
    """
    config_path = resolve_config_path(path)
    if not config_path.exists():
        return Settings()

    try:
        data = toml.load(config_path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigError(f"Could not read {config_path}: {e}") from e

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}:\n{e}") from e


def create_template_config(path: Optional[Union[str, Path]] = None) -> Path:
    """Write a template configuration file.

    Args:
        path: Where to write. Defaults to the resolved config path.

    Returns:
        Path of the written file.
    """
    config_path = resolve_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    template = {
        "database": {
            "path": str(DEFAULT_DB_PATH),
        },
        "scheduler": {
            "interval_seconds": 30,
            "daily_reset": "00:00",
            "timezone": "UTC",
            "single_flight": True,
            "max_workers": 1,
        },
        "source": {
            "symbols": list(DEFAULT_SYMBOLS),
            "volatility": 0.002,
        },
        "alerts": {
            "owner": "local",
        },
        "logging": {
            "level": "INFO",
        },
    }

    with open(config_path, "w") as f:
        toml.dump(template, f)

    return config_path
