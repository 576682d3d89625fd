"""
Runtime settings read from the environment.

Values come from process environment variables, typically populated from a
.env file by env.load_env().
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_CACHE_DB = "data/jobs_cache.db"
DEFAULT_BATCH_SIZE = 500
DEFAULT_LEASE_SECONDS = 3600
DEFAULT_ANALYTICS_TTL_HOURS = 24
DEFAULT_FETCH_RETRIES = 3

LOAD_STRATEGIES = ("swap", "in_place")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass
class Settings:
    """Settings shared by the sync pipeline, analytics and CLI."""

    cache_db_path: Path = Path(DEFAULT_CACHE_DB)
    source_database_url: Optional[str] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    load_strategy: str = "swap"
    lease_seconds: int = DEFAULT_LEASE_SECONDS
    analytics_ttl_hours: int = DEFAULT_ANALYTICS_TTL_HOURS
    fetch_retries: int = DEFAULT_FETCH_RETRIES
    dictionary_path: Optional[Path] = None
    log_level: str = "INFO"
    log_dir: Path = Path("logs")

    def __post_init__(self):
        if self.load_strategy not in LOAD_STRATEGIES:
            raise ValueError(
                f"Unknown load strategy {self.load_strategy!r}; expected one of {', '.join(LOAD_STRATEGIES)}"
            )
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

    @classmethod
    def from_env(cls) -> "Settings":
        dictionary = os.getenv("UNJOBS_DICTIONARY")
        return cls(
            cache_db_path=Path(os.getenv("UNJOBS_CACHE_DB", DEFAULT_CACHE_DB)),
            source_database_url=os.getenv("SOURCE_DATABASE_URL") or None,
            batch_size=_int_env("SYNC_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            load_strategy=os.getenv("SYNC_LOAD_STRATEGY", "swap").strip().lower(),
            lease_seconds=_int_env("SYNC_LEASE_SECONDS", DEFAULT_LEASE_SECONDS),
            analytics_ttl_hours=_int_env("ANALYTICS_TTL_HOURS", DEFAULT_ANALYTICS_TTL_HOURS),
            fetch_retries=_int_env("SOURCE_FETCH_RETRIES", DEFAULT_FETCH_RETRIES),
            dictionary_path=Path(dictionary) if dictionary else None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_dir=Path(os.getenv("LOG_DIR", "logs")),
        )
