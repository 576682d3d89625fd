"""
Cache database schema and connection management.

Uses SQLite with SQLAlchemy. The cache holds classified postings, a staging
copy used while reloading, precomputed analytics and a single sync status row.
"""

from pathlib import Path
from typing import Dict

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    JSON,
    String,
    Text,
    create_engine,
    event,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()

SYNC_STATUSES = ("never_synced", "syncing", "completed", "failed")

_engines: Dict[str, Engine] = {}


class PostingColumns:
    """Columns shared by the live postings table and its staging copy."""

    id = Column(Integer, primary_key=True, autoincrement=False)  # source job id
    title = Column(String, nullable=False, default="")
    description = Column(Text)
    job_labels = Column(Text)
    short_agency = Column(String)  # effective agency
    long_agency = Column(String)
    department = Column(String)
    duty_station = Column(String)
    duty_country = Column(String)
    duty_continent = Column(String)
    country_code = Column(String)
    up_grade = Column(String)
    posting_date = Column(DateTime)
    apply_until = Column(DateTime)
    url = Column(String)
    languages = Column(String)
    archived = Column(Boolean, nullable=False, default=False)
    hs_min_exp = Column(Integer)
    bachelor_min_exp = Column(Integer)
    master_min_exp = Column(Integer)

    # Classification
    primary_category = Column(String, nullable=False)
    secondary_categories = Column(JSON, nullable=False, default=list)
    classification_confidence = Column(Integer, nullable=False, default=0)
    classification_reasoning = Column(JSON, nullable=False, default=list)
    classification_flags = Column(JSON, nullable=False, default=dict)

    # Derived
    seniority_level = Column(String)
    location_type = Column(String)  # HQ, Field, Remote
    skill_domains = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False)  # active, closing_soon, expired, archived
    is_active = Column(Boolean, nullable=False, default=False)
    is_expired = Column(Boolean, nullable=False, default=False)
    days_remaining = Column(Integer, nullable=False, default=0)
    urgency = Column(String)  # urgent, normal, extended
    application_window_days = Column(Integer, nullable=False, default=0)
    formatted_posting_date = Column(String, nullable=False, default="")
    formatted_apply_until = Column(String, nullable=False, default="")
    processed_at = Column(DateTime, nullable=False)


class CachedPosting(PostingColumns, Base):
    """Classified posting served to readers."""

    __tablename__ = "postings"
    __table_args__ = (
        Index("idx_postings_agency", "short_agency"),
        Index("idx_postings_category", "primary_category"),
        Index("idx_postings_status", "status"),
        Index("idx_postings_posting_date", "posting_date"),
        Index("idx_postings_country", "duty_country"),
        Index("idx_postings_grade", "up_grade"),
        Index(
            "idx_postings_url_unique",
            "url",
            unique=True,
            sqlite_where=text("url IS NOT NULL AND url != ''"),
        ),
    )


class StagedPosting(PostingColumns, Base):
    """Posting loaded during a sync, before it replaces the live table."""

    __tablename__ = "postings_staging"


class SyncMetadata(Base):
    """Singleton row describing the last sync."""

    __tablename__ = "sync_metadata"
    __table_args__ = (CheckConstraint("id = 1", name="ck_sync_metadata_singleton"),)

    id = Column(Integer, primary_key=True, default=1)
    status = Column(String, nullable=False, default="never_synced")
    last_sync_at = Column(DateTime)
    total_jobs = Column(Integer, nullable=False, default=0)
    sync_duration_ms = Column(Integer)
    error_message = Column(Text)
    lease_owner = Column(String)
    lease_expires_at = Column(DateTime)


class AnalyticsCacheEntry(Base):
    """Precomputed dashboard aggregate."""

    __tablename__ = "analytics_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cache_key = Column(String, nullable=False, unique=True)
    data = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    # lets prefix LIKE filters use plain column indexes
    cursor.execute("PRAGMA case_sensitive_like=ON")
    cursor.close()


def get_engine(db_path: Path) -> Engine:
    """
    Return the engine for a cache database, creating it on first use.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy engine with WAL enabled
    """
    key = str(Path(db_path).resolve())
    engine = _engines.get(key)
    if engine is None:
        engine = create_engine(f"sqlite:///{db_path}")
        event.listen(engine, "connect", _set_sqlite_pragmas)
        _engines[key] = engine
    return engine


def dispose_engines() -> None:
    """Close pooled connections for every cached engine."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()


def init_database(db_path: Path) -> None:
    """
    Initialize database, create tables and the sync status row.

    Args:
        db_path: Path to SQLite database file
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(db_path)
    Base.metadata.create_all(engine)

    session = get_session(db_path)
    try:
        if session.get(SyncMetadata, 1) is None:
            session.add(SyncMetadata(id=1, status="never_synced", total_jobs=0))
            session.commit()
    finally:
        session.close()


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    Session = sessionmaker(bind=get_engine(db_path))
    return Session()
