"""Settings read from LOADTEST_* environment variables."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    results_dir: str = "results"
    log_level: str = "WARNING"
    environments_file: Optional[str] = None

    model_config = {"env_prefix": "LOADTEST_", "env_file": ".env", "extra": "ignore"}


def get_settings() -> Settings:
    return Settings()
