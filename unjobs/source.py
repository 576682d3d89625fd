"""
Read access to the authoritative postings store.

The source is any database SQLAlchemy can reach, holding a `jobs` table.
Optional columns missing from the source table are read as None.
"""

from typing import Any, Dict, Iterable, List, Union

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError

from .logger import get_logger
from .normalize import dedup_key
from .retry import exponential_backoff, is_transient_error

logger = get_logger()

SOURCE_TABLE = "jobs"
SOURCE_COLUMNS = [
    "id",
    "title",
    "description",
    "job_labels",
    "short_agency",
    "long_agency",
    "department",
    "duty_station",
    "duty_country",
    "duty_continent",
    "country_code",
    "up_grade",
    "posting_date",
    "apply_until",
    "url",
    "languages",
    "archived",
    "hs_min_exp",
    "bachelor_min_exp",
    "master_min_exp",
]

TRANSIENT_ERRORS = (DBAPIError, TimeoutError, ConnectionError)


def define_source_table(metadata: MetaData) -> Table:
    """
    Layout of the source `jobs` table, for seeding local source databases.

    Dates are stored as text, as exported by the upstream feed.
    """
    return Table(
        SOURCE_TABLE,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column("title", String),
        Column("description", Text),
        Column("job_labels", Text),
        Column("short_agency", String),
        Column("long_agency", String),
        Column("department", String),
        Column("duty_station", String),
        Column("duty_country", String),
        Column("duty_continent", String),
        Column("country_code", String),
        Column("up_grade", String),
        Column("posting_date", String),
        Column("apply_until", String),
        Column("url", String),
        Column("languages", String),
        Column("archived", Integer, default=0),
        Column("hs_min_exp", Integer),
        Column("bachelor_min_exp", Integer),
        Column("master_min_exp", Integer),
    )


def dedup_postings(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Collapse rows sharing a natural key, keeping the one with the highest id.

    The natural key is the stripped URL, or the id when the URL is blank.
    Result is ordered by id.
    """
    kept: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        key = dedup_key(row.get("url"), row.get("id"))
        current = kept.get(key)
        if current is None or int(row["id"]) > int(current["id"]):
            kept[key] = row
    return sorted(kept.values(), key=lambda r: int(r["id"]))


def _log_retry(attempt: int, error: Exception, delay: float):
    logger.warning(
        f"Source read failed, retrying in {delay:.1f}s",
        attempt=attempt,
        error=str(error),
    )


class SourceStore:
    """Reader for the source `jobs` table."""

    def __init__(
        self,
        database: Union[str, Engine],
        max_retries: int = 3,
        base_delay: float = 1.0,
    ):
        self.engine = create_engine(database) if isinstance(database, str) else database
        self.max_retries = max_retries
        self.base_delay = base_delay

    def _table(self) -> Table:
        return Table(SOURCE_TABLE, MetaData(), autoload_with=self.engine)

    def _read_rows(self) -> List[Dict[str, Any]]:
        table = self._table()
        present = [table.c[name] for name in SOURCE_COLUMNS if name in table.c]
        with self.engine.connect() as conn:
            result = conn.execute(select(*present).order_by(table.c.id))
            rows = []
            for row in result:
                data = {name: None for name in SOURCE_COLUMNS}
                data.update(row._mapping)
                rows.append(data)
        return rows

    def _with_retry(self, func):
        return exponential_backoff(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            exceptions=TRANSIENT_ERRORS,
            on_retry=_log_retry,
            retry_if=is_transient_error,
        )(func)

    def fetch_rows(self) -> List[Dict[str, Any]]:
        """
        Read every source row, retrying transient failures.

        Raises:
            RetryError: If the source stays unavailable
        """
        return self._with_retry(self._read_rows)()

    def fetch_postings(self) -> List[Dict[str, Any]]:
        """Read every source row and collapse duplicates."""
        rows = self.fetch_rows()
        postings = dedup_postings(rows)
        logger.info(
            "Fetched source postings",
            rows=len(rows),
            unique=len(postings),
            duplicates=len(rows) - len(postings),
        )
        return postings

    def count(self) -> int:
        """Number of rows in the source table, duplicates included."""
        def _count():
            table = self._table()
            with self.engine.connect() as conn:
                return conn.execute(select(func.count()).select_from(table)).scalar_one()
        return self._with_retry(_count)()
