"""
Full synchronization from the source store into the local cache.

A sync reads every source posting, drops duplicates, classifies and derives
lifecycle fields, reloads the cache in batches and refreshes the dashboard
aggregates. Only one sync runs at a time: an in-process lock guards threads
and a lease on the sync metadata row guards other processes.

Load strategies:
    swap      Batches go to a staging table; one transaction then replaces
              the live postings. A failure leaves the previous snapshot.
    in_place  The live table is emptied, then refilled batch by batch.
              Readers can see an empty or partial table meanwhile, and a
              failed batch leaves the batches committed before it.
"""

import os
import socket
import threading
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .agencies import effective_agency
from .analytics import AnalyticsPrecomputer
from .classifier import Classifier, seniority_level
from .config import Settings
from .lifecycle import (
    derive_lifecycle,
    location_type,
    parse_archived,
    parse_date,
    skill_domains,
    utcnow,
)
from .logger import get_logger
from .normalize import clean_url
from .schema import validate_source_row
from .source import SourceStore
from .storage import CacheStore

logger = get_logger()

SYNC_IN_PROGRESS = "Sync already in progress"

_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def sync_lock(store: CacheStore) -> threading.Lock:
    """Process-wide lock for one cache database."""
    key = str(store.db_path.resolve())
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.Lock()
        return _locks[key]


@dataclass
class SyncResult:
    success: bool
    total_source: int = 0
    total_processed: int = 0
    skipped: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    analytics: Dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _chunks(rows: List[dict], size: int):
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


class SyncOrchestrator:
    """Runs full syncs of one source into one cache."""

    def __init__(
        self,
        store: CacheStore,
        source: SourceStore,
        classifier: Optional[Classifier] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        precomputer: Optional[AnalyticsPrecomputer] = None,
    ):
        self.store = store
        self.source = source
        self.classifier = classifier or Classifier()
        self.settings = settings or Settings(cache_db_path=store.db_path)
        self.clock = clock
        self.precomputer = precomputer or AnalyticsPrecomputer(
            store,
            ttl_hours=self.settings.analytics_ttl_hours,
            dictionary=self.classifier.dictionary,
        )
        self.owner = f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"

    def build_row(self, posting: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        """Turn one source posting into a cache row."""
        posting_date = parse_date(posting.get("posting_date"))
        apply_until = parse_date(posting.get("apply_until"))
        archived = parse_archived(posting.get("archived"))

        result = self.classifier.classify(posting)
        if result.is_fallback:
            logger.record_fallback()

        row = {
            "id": int(posting["id"]),
            "title": posting["title"].strip(),
            "description": posting.get("description"),
            "job_labels": posting.get("job_labels"),
            "short_agency": effective_agency(posting.get("short_agency"), posting.get("department")),
            "long_agency": posting.get("long_agency"),
            "department": posting.get("department"),
            "duty_station": posting.get("duty_station"),
            "duty_country": posting.get("duty_country"),
            "duty_continent": posting.get("duty_continent"),
            "country_code": posting.get("country_code"),
            "up_grade": posting.get("up_grade"),
            "posting_date": posting_date,
            "apply_until": apply_until,
            "url": clean_url(posting.get("url")),
            "languages": posting.get("languages"),
            "archived": archived,
            "hs_min_exp": _to_int(posting.get("hs_min_exp")),
            "bachelor_min_exp": _to_int(posting.get("bachelor_min_exp")),
            "master_min_exp": _to_int(posting.get("master_min_exp")),
            "primary_category": result.primary,
            "secondary_categories": [s["category"] for s in result.secondary],
            "classification_confidence": result.confidence,
            "classification_reasoning": result.reasoning,
            "classification_flags": result.flags,
            "seniority_level": seniority_level(posting.get("up_grade")),
            "location_type": location_type(posting.get("duty_country"), posting.get("duty_station")),
            "skill_domains": skill_domains(posting.get("job_labels")),
            "processed_at": now,
        }
        row.update(derive_lifecycle(posting_date, apply_until, archived, now))
        return row

    def process(self, postings: List[Dict[str, Any]], now: datetime) -> Tuple[List[dict], int]:
        """Validate and transform postings. Returns (rows, skipped)."""
        rows = []
        skipped = 0
        for posting in postings:
            errors = validate_source_row(posting)
            if errors:
                skipped += 1
                logger.record_skipped("validation_error")
                logger.warning("Skipping invalid source posting", id=posting.get("id"), errors=errors)
                continue
            rows.append(self.build_row(posting, now))
            logger.record_processed()
        return rows, skipped

    def _insert_batches(self, rows: List[dict], staging: bool) -> None:
        for number, batch in enumerate(_chunks(rows, self.settings.batch_size), start=1):
            try:
                self.store.insert_batch(batch, staging=staging)
            except Exception:
                logger.record_batch(committed=False)
                logger.error("Batch insert failed", batch=number, size=len(batch), staging=staging)
                raise
            logger.record_batch(committed=True)
            logger.debug("Batch committed", batch=number, size=len(batch), staging=staging)

    def _load_swap(self, rows: List[dict]) -> int:
        self.store.clear_staging()
        try:
            self._insert_batches(rows, staging=True)
        except Exception:
            self.store.clear_staging()
            raise
        return self.store.swap_in_staging()

    def _load_in_place(self, rows: List[dict]) -> int:
        self.store.clear_postings()
        self._insert_batches(rows, staging=False)
        return self.store.count_postings()

    def load(self, rows: List[dict]) -> int:
        if self.settings.load_strategy == "in_place":
            return self._load_in_place(rows)
        return self._load_swap(rows)

    def full_sync(self) -> SyncResult:
        """
        Run one full sync.

        Never raises. Returns a failed SyncResult when another sync holds the
        lock or lease, or when any step fails; in the latter case the sync
        metadata records the failure.
        """
        lock = sync_lock(self.store)
        if not lock.acquire(blocking=False):
            logger.warning(SYNC_IN_PROGRESS, db=str(self.store.db_path))
            return SyncResult(success=False, error=SYNC_IN_PROGRESS)
        try:
            now = self.clock()
            if not self.store.acquire_sync_lease(self.owner, now, self.settings.lease_seconds):
                logger.warning(SYNC_IN_PROGRESS, db=str(self.store.db_path), reason="lease held")
                return SyncResult(success=False, error=SYNC_IN_PROGRESS)
            try:
                return self._run(now)
            finally:
                self.store.release_sync_lease(self.owner)
        finally:
            lock.release()

    def _run(self, now: datetime) -> SyncResult:
        started = time.monotonic()
        logger.reset_metrics()
        logger.info("Sync started", strategy=self.settings.load_strategy, owner=self.owner)
        total_source = 0
        try:
            postings = self.source.fetch_postings()
            total_source = len(postings)
            logger.record_fetch(total_source)

            rows, skipped = self.process(postings, now)
            loaded = self.load(rows)
            analytics = self.precomputer.precompute_all(now)

            duration_ms = int((time.monotonic() - started) * 1000)
            self.store.update_sync_metadata(
                status="completed",
                total_jobs=loaded,
                sync_duration_ms=duration_ms,
                error_message=None,
            )
            logger.info("Sync completed", total_jobs=loaded, skipped=skipped, duration_ms=duration_ms)
            logger.log_metrics_summary()
            return SyncResult(
                success=True,
                total_source=total_source,
                total_processed=loaded,
                skipped=skipped,
                duration_ms=duration_ms,
                analytics=analytics,
            )
        except Exception as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.record_error(type(e).__name__)
            logger.error("Sync failed", error=str(e), error_type=type(e).__name__)
            self.store.update_sync_metadata(
                status="failed",
                error_message=str(e),
                sync_duration_ms=duration_ms,
            )
            logger.log_metrics_summary()
            return SyncResult(
                success=False,
                total_source=total_source,
                duration_ms=duration_ms,
                error=str(e),
            )
