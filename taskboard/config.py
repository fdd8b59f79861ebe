from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


PROJECT_ROOT = Path(__file__).resolve().parents[1]


def load_env() -> None:
    env_name = os.getenv("APP_ENV", "development")
    candidates = [Path.cwd(), PROJECT_ROOT]
    for base in candidates:
        env_path = base / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            break

    for base in candidates:
        env_specific = base / f".env.{env_name}"
        if env_specific.exists():
            load_dotenv(env_specific, override=True)
            break


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str = "INFO"
    log_dir: str = "logs"
    scheduler_tick_seconds: float = 60.0
    scheduler_pass_deadline_seconds: float = 30.0
    scheduler_max_workers: int = 4
    activity_log_limit: int = 500


load_env()

SETTINGS = Settings(
    database_url=os.getenv("DATABASE_URL", "").strip() or "sqlite:///taskboard.db",
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_dir=os.getenv("LOG_DIR", "logs"),
    scheduler_tick_seconds=float(os.getenv("SCHEDULER_TICK_SECONDS", "60")),
    scheduler_pass_deadline_seconds=float(os.getenv("SCHEDULER_PASS_DEADLINE_SECONDS", "30")),
    scheduler_max_workers=int(os.getenv("SCHEDULER_MAX_WORKERS", "4")),
    activity_log_limit=int(os.getenv("ACTIVITY_LOG_LIMIT", "500")),
)
