"""Dashboard process settings."""

import logging
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)
load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="BITVISION_", extra="ignore",
        populate_by_name=True,
    )

    # Persisted document (credentials + autotrade)
    config_path: Path = Path(".bitvision.json")

    # Cache files written by the external refresh command
    cache_dir: Path = Path("../cache/data")

    # Scheduler cadence; a tunable, not a correctness property
    refresh_interval_seconds: float = 1.0

    # External commands. Buy/sell get the amount appended as the last argument.
    login_command: str = ""
    buy_command: str = "python3 ../services/trader.py -b"
    sell_command: str = "python3 ../services/trader.py -s"
    refresh_command: str = "python3 ../services/controller.py REFRESH"
    retrain_command: str = "python3 ../services/controller.py RETRAIN"

    # Autotrade
    default_trade_delay_hours: float = 24.0

    # Display
    max_headline_length: int = 35
    log_buffer_lines: int = 500
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("refresh_interval_seconds")
    @classmethod
    def _positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("refresh_interval_seconds must be > 0")
        return v

    @property
    def has_login_command(self) -> bool:
        return bool(self.login_command.strip())


def load_settings(**overrides) -> Settings:
    """Build settings from env/.env, applying explicit overrides last."""
    settings = Settings(**overrides)
    if overrides:
        logger.debug("Settings overrides applied: %s", sorted(overrides))
    return settings
