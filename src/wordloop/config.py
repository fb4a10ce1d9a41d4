"""Configuration settings loaded from the environment."""

import os
from pathlib import Path

from pydantic import BaseModel, Field

from wordloop.core.scheduler import SchedulerParams

# Environment variable -> SchedulerParams field
_SCHEDULER_ENV = {
    "WORDLOOP_GRADUATION_THRESHOLD": "graduation_threshold",
    "WORDLOOP_HARD_PRESS_TOLERANCE": "hard_press_tolerance",
    "WORDLOOP_LAPSE_EASE_PENALTY": "lapse_ease_penalty",
    "WORDLOOP_LAPSE_DEMOTION_THRESHOLD": "lapse_demotion_threshold",
    "WORDLOOP_EASY_EASE_BONUS": "easy_ease_bonus",
    "WORDLOOP_EASY_INTERVAL_BONUS": "easy_interval_bonus",
    "WORDLOOP_MAX_INTERVAL_DAYS": "max_interval_days",
}


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    level: str = "WARNING"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Path | None = None


class Settings(BaseModel):
    """Top-level wordloop settings."""

    data_dir: Path = Field(default_factory=lambda: Path.cwd() / "data")
    state_dir: Path = Field(default_factory=lambda: Path.cwd() / ".wordloop")
    daily_goal: int = Field(default=20, ge=0)
    scheduler: SchedulerParams = Field(default_factory=SchedulerParams)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """Build settings from ``WORDLOOP_*`` environment variables."""
    env = os.environ if environ is None else environ

    values: dict = {}
    if env.get("WORDLOOP_DATA_DIR"):
        values["data_dir"] = Path(env["WORDLOOP_DATA_DIR"])
    if env.get("WORDLOOP_STATE_DIR"):
        values["state_dir"] = Path(env["WORDLOOP_STATE_DIR"])
    if env.get("WORDLOOP_DAILY_GOAL"):
        values["daily_goal"] = env["WORDLOOP_DAILY_GOAL"]

    scheduler = {field: env[name] for name, field in _SCHEDULER_ENV.items() if env.get(name)}
    if scheduler:
        values["scheduler"] = scheduler

    logging_values = {}
    if env.get("WORDLOOP_LOG_LEVEL"):
        logging_values["level"] = env["WORDLOOP_LOG_LEVEL"].upper()
    if env.get("WORDLOOP_LOG_FILE"):
        logging_values["file"] = env["WORDLOOP_LOG_FILE"]
    if logging_values:
        values["logging"] = logging_values

    return Settings.model_validate(values)
