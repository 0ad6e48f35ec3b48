"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Cadence configuration. All values come from environment variables."""

    # Database
    database_path: Path = Field(default=Path("data/cadence.db"))

    # Turso (hosted libSQL); overrides database_path when set
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Scheduler
    scheduler_timezone: str = Field(default="Asia/Shanghai")
    seed_default_tasks: bool = Field(default=True)

    # Pipelines
    sequences_path: Path = Field(default=Path("sequences.yaml"))
    default_concurrency: int = Field(default=1)
    default_throttle_interval: float = Field(default=0.2)

    # Outbound webhooks (multiple URLs joined by webhook_delimiter)
    daily_webhook_url: str = Field(default="")
    daily_webhook_token: str = Field(default="")
    weekly_webhook_url: str = Field(default="")
    monthly_webhook_url: str = Field(default="")
    webhook_delimiter: str = Field(default=";")
    webhook_timeout: float = Field(default=30.0)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)


settings = Settings()
