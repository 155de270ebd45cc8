# backend/learnflow/config.py
from datetime import date
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "learnflow"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    # Schema is managed by alembic: `alembic upgrade head` from backend/
    database_url: str = "sqlite:///./learnflow.db"

    # Redis (fact delivery and dramatiq broker)
    redis_url: str = "redis://redis:6379/0"
    facts_channel: str = "learnflow:facts"

    # === Deadlines ===
    # Used when neither the request nor the flow carries a working-day budget
    default_days_per_step: int = 7
    # Python weekday numbers, Monday == 0
    working_days_of_week: List[int] = [0, 1, 2, 3, 4]
    holidays: List[date] = []
    deadline_warning_days: int = 3

    # === Snapshot retention ===
    snapshot_retention_days: int = 365
    snapshot_keep_minimum: int = 1

    class Config:
        env_file = ".env"
        env_prefix = "LEARNFLOW_"


@lru_cache
def get_settings() -> Settings:
    return Settings()
