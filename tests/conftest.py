"""
Pytest configuration and shared fixtures.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

import pytest
from sqlalchemy import MetaData, create_engine, insert

from unjobs.database import dispose_engines
from unjobs.logger import get_logger, reset_logger
from unjobs.source import define_source_table
from unjobs.storage import CacheStore

NOW = datetime(2025, 6, 15, 12, 0, 0)


@pytest.fixture(autouse=True)
def quiet_logger(tmp_path):
    """Route logs to a temp dir without console output, and drop engines after each test."""
    reset_logger()
    get_logger(log_dir=tmp_path / "logs", enable_console=False)
    yield
    logging.getLogger("unjobs").handlers.clear()
    reset_logger()
    dispose_engines()


@pytest.fixture
def now() -> datetime:
    """Fixed reference time used as the sync clock."""
    return NOW


@pytest.fixture
def cache_store(tmp_path) -> CacheStore:
    """Initialized cache database in a temp dir."""
    store = CacheStore(tmp_path / "cache" / "jobs_cache.db")
    store.init()
    return store


def _source_row(job_id: int, **overrides) -> Dict[str, Any]:
    row = {
        "id": job_id,
        "title": f"Programme Officer {job_id}",
        "description": "Support project monitoring and reporting for country programmes.",
        "job_labels": "Project Management, Reporting",
        "short_agency": "UNDP",
        "long_agency": "United Nations Development Programme",
        "department": None,
        "duty_station": "Juba",
        "duty_country": "South Sudan",
        "duty_continent": "Africa",
        "country_code": "SS",
        "up_grade": "P-3",
        "posting_date": "2025-06-01",
        "apply_until": "2025-07-01",
        "url": f"https://careers.example.org/jobs/{job_id}",
        "languages": "English",
        "archived": 0,
        "hs_min_exp": None,
        "bachelor_min_exp": 5,
        "master_min_exp": 2,
    }
    row.update(overrides)
    return row


@pytest.fixture
def make_row():
    """Factory for source posting dicts with sensible defaults."""
    return _source_row


class SourceDatabase:
    """SQLite file holding a source `jobs` table."""

    def __init__(self, path: Path):
        self.url = f"sqlite:///{path}"
        self.engine = create_engine(self.url)
        self.metadata = MetaData()
        self.table = define_source_table(self.metadata)
        self.metadata.create_all(self.engine)

    def add(self, *rows: Dict[str, Any]) -> None:
        with self.engine.begin() as conn:
            conn.execute(insert(self.table), list(rows))


@pytest.fixture
def source_db(tmp_path):
    """Empty source database; add rows with source_db.add(...)."""
    db = SourceDatabase(tmp_path / "source.db")
    yield db
    db.engine.dispose()
