from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

DATA_DIR = Path(__file__).parent.parent / "data"


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # CloudFlare tag purge limit (purges/day) and early-warning fraction
    daily_tag_purge_limit: int = 200
    warning_ratio: float = 0.75
    # "legacy" keeps over-limit counts at WARNING, "corrected" reports ERROR
    rate_limit_ordering: str = "legacy"

    # Check definitions + optional message translations (YAML)
    checks_file: str = "checks.yaml"
    translations_file: str = ""

    # SQLite storage
    state_db_path: str = str(DATA_DIR / "purge_state.db")
    health_db_path: str = str(DATA_DIR / "health.db")
    history_retention_days: int = 30

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"


settings = Settings()
