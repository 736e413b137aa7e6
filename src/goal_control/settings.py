from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application configuration loaded from Environment Variables or .env file.
    """

    GOALS_FILE: Path = Path("goals.yaml")
    POLLING_INTERVAL: int = 30
    CONTROL_INTERVAL: float = 0.1
    DOCKER_BASE_URL: str | None = None  # Optional: Connect to remote docker
    MAX_WORKERS: int | None = None  # Optional: Cap the containers reconciled at once
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="GOAL_", env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> AppSettings:
    """
    Creates a singleton instance of AppSettings.
    Uses lru_cache to ensure the .env file is read only once.
    """
    return AppSettings()
