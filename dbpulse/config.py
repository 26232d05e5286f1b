"""
Configuration loader for dbpulse.

Loads environment variables from .env (if present) and provides safe defaults.
By default a local SQLite DB is used (sqlite:///./dbpulse.db) unless DATABASE_URL is set.
"""

import os
from dotenv import load_dotenv

load_dotenv()

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _getenv(name: str, default: str = "") -> str:
    return os.getenv(name, default)


def _getbool(name: str, default: str = "false") -> bool:
    return _getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    DATABASE_URL: str = _getenv("DATABASE_URL") or "sqlite:///./dbpulse.db"
    # Fetching
    USER_AGENT: str = _getenv("USER_AGENT") or DEFAULT_USER_AGENT
    FETCH_TIMEOUT_SECONDS: float = float(_getenv("FETCH_TIMEOUT_SECONDS", "30"))
    DETAIL_TIMEOUT_SECONDS: float = float(_getenv("DETAIL_TIMEOUT_SECONDS", "15"))
    FETCH_MAX_ATTEMPTS: int = int(_getenv("FETCH_MAX_ATTEMPTS", "3"))
    FETCH_BACKOFF_SECONDS: float = float(_getenv("FETCH_BACKOFF_SECONDS", "2"))
    PAGE_SETTLE_SECONDS: float = float(_getenv("PAGE_SETTLE_SECONDS", "2"))
    DETAIL_DELAY_SECONDS: float = float(_getenv("DETAIL_DELAY_SECONDS", "0.5"))
    # SNAPSHOT_DIR: read saved listing pages instead of fetching live
    SNAPSHOT_DIR: str = _getenv("SNAPSHOT_DIR")
    # Processing
    STORE_UNCATEGORIZED: bool = _getbool("STORE_UNCATEGORIZED")
    # Scheduling and manual triggers
    MAX_DAILY_MANUAL_RUNS: int = int(_getenv("MAX_DAILY_MANUAL_RUNS", "5"))
    CHECK_INTERVAL_SECONDS: int = int(_getenv("CHECK_INTERVAL_SECONDS", "3600"))
    RUN_ON_STARTUP: bool = _getbool("RUN_ON_STARTUP", "true")
    # Logging
    LOG_LEVEL: str = _getenv("LOG_LEVEL", "INFO").upper()

settings = Settings()
