"""
Runtime settings, read from the environment (and backend/.env when present).
"""
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str
    cors_origins: list[str]
    log_level: str
    json_logs: bool
    admin_token: str
    reject_backdated_events: bool


@lru_cache
def get_settings() -> Settings:
    origins = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///focus.db"),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        json_logs=_env_bool("JSON_LOGS", False),
        # Empty token means no caller is ever treated as privileged.
        admin_token=(os.getenv("ADMIN_TOKEN") or "").strip(),
        reject_backdated_events=_env_bool("REJECT_BACKDATED_EVENTS", True),
    )
