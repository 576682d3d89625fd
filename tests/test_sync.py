"""
Tests for the full sync pipeline.
"""

from datetime import timedelta

import pytest

from unjobs.config import Settings
from unjobs.database import CachedPosting
from unjobs.source import SourceStore
from unjobs.storage import posting_to_dict
from unjobs.sync import SYNC_IN_PROGRESS, SyncOrchestrator, sync_lock


def _orchestrator(store, source_db, now, **settings):
    return SyncOrchestrator(
        store,
        SourceStore(source_db.url, base_delay=0),
        settings=Settings(cache_db_path=store.db_path, **settings),
        clock=lambda: now,
    )


def _cached(store):
    session = store.session()
    try:
        return [posting_to_dict(p) for p in session.query(CachedPosting).order_by(CachedPosting.id)]
    finally:
        session.close()


def _fail_on_call(store, monkeypatch, call_number, message="disk I/O error"):
    """Make the Nth insert_batch call raise."""
    original = store.insert_batch
    calls = [0]

    def insert_batch(rows, staging=False):
        calls[0] += 1
        if calls[0] == call_number:
            raise RuntimeError(message)
        return original(rows, staging=staging)

    monkeypatch.setattr(store, "insert_batch", insert_batch)


def _observe_reads(store, monkeypatch):
    """Record the live ids a reader sees before each batch and before the swap."""
    seen = []
    original_insert = store.insert_batch
    original_swap = store.swap_in_staging

    def insert_batch(rows, staging=False):
        seen.append(("batch", [p["id"] for p in _cached(store)]))
        return original_insert(rows, staging=staging)

    def swap_in_staging():
        seen.append(("swap", [p["id"] for p in _cached(store)]))
        return original_swap()

    monkeypatch.setattr(store, "insert_batch", insert_batch)
    monkeypatch.setattr(store, "swap_in_staging", swap_in_staging)
    return seen


class TestFullSync:
    """Successful syncs."""

    def test_duplicates_collapse_to_highest_id(self, cache_store, source_db, make_row, now):
        """Three rows sharing a URL become one cached posting."""
        source_db.add(
            make_row(10, url="https://example.org/jobs/dup"),
            make_row(20, url="https://example.org/jobs/dup"),
            make_row(30, url="https://example.org/jobs/dup"),
            make_row(40),
            make_row(41, url=""),
            make_row(42, url=None),
        )

        result = _orchestrator(cache_store, source_db, now).full_sync()

        assert result.success
        assert result.error is None
        assert result.total_source == 4
        assert result.total_processed == 4
        assert [p["id"] for p in _cached(cache_store)] == [30, 40, 41, 42]

    def test_derived_fields(self, cache_store, source_db, make_row, now):
        source_db.add(make_row(1, url="  https://example.org/jobs/1  "))

        _orchestrator(cache_store, source_db, now).full_sync()
        posting = _cached(cache_store)[0]

        assert posting["url"] == "https://example.org/jobs/1"
        assert posting["days_remaining"] == 16
        assert posting["status"] == "active"
        assert posting["urgency"] == "normal"
        assert posting["is_active"] is True
        assert posting["application_window_days"] == 30
        assert posting["seniority_level"] == "Mid-Level"
        assert posting["location_type"] == "Field"
        assert posting["skill_domains"] == ["Management"]
        assert posting["formatted_apply_until"] == "2025-07-01"
        assert posting["processed_at"] == now
        assert isinstance(posting["secondary_categories"], list)
        assert posting["classification_reasoning"]

    def test_blank_url_stored_as_null(self, cache_store, source_db, make_row, now):
        source_db.add(make_row(1, url=""), make_row(2, url="   "))

        _orchestrator(cache_store, source_db, now).full_sync()

        assert [p["url"] for p in _cached(cache_store)] == [None, None]

    def test_leadership_posting(self, cache_store, source_db, make_row, now):
        source_db.add(make_row(1, title="Programme Specialist", up_grade="D-1"))

        _orchestrator(cache_store, source_db, now).full_sync()
        posting = _cached(cache_store)[0]

        assert posting["primary_category"] == "leadership-executive"
        assert posting["classification_confidence"] == 95
        assert posting["secondary_categories"] == []
        assert posting["seniority_level"] == "Executive"

    def test_secretariat_office_becomes_agency(self, cache_store, source_db, make_row, now):
        source_db.add(make_row(
            1,
            short_agency="UN Secretariat",
            department="Office for the Coordination of Humanitarian Affairs",
        ))

        _orchestrator(cache_store, source_db, now).full_sync()

        assert _cached(cache_store)[0]["short_agency"] == "OCHA"

    def test_invalid_rows_skipped(self, cache_store, source_db, make_row, now):
        source_db.add(make_row(1), make_row(2, title="   "))

        result = _orchestrator(cache_store, source_db, now).full_sync()

        assert result.success
        assert result.skipped == 1
        assert result.total_processed == 1

    def test_metadata_completed(self, cache_store, source_db, make_row, now):
        source_db.add(make_row(1), make_row(2))

        _orchestrator(cache_store, source_db, now).full_sync()
        meta = cache_store.get_sync_metadata()

        assert meta["status"] == "completed"
        assert meta["total_jobs"] == 2
        assert meta["last_sync_at"] == now
        assert meta["error_message"] is None
        assert meta["lease_owner"] is None
        assert meta["sync_duration_ms"] >= 0

    def test_analytics_precomputed(self, cache_store, source_db, make_row, now):
        source_db.add(make_row(1), make_row(2, short_agency="UNICEF"))

        result = _orchestrator(cache_store, source_db, now).full_sync()

        assert len(result.analytics) == 7
        assert all(result.analytics.values())
        overview = cache_store.get_analytics("dashboard:overview")
        assert overview["data"]["total_postings"] == 2
        assert overview["data"]["total_agencies"] == 2

    def test_sync_is_idempotent(self, cache_store, source_db, make_row, now):
        """Two syncs of the same source give the same cache."""
        source_db.add(make_row(1), make_row(2, up_grade="D-1"), make_row(3, apply_until="2025-06-16"))
        orchestrator = _orchestrator(cache_store, source_db, now)

        orchestrator.full_sync()
        first = _cached(cache_store)
        orchestrator.full_sync()

        assert _cached(cache_store) == first

    def test_resync_replaces_snapshot(self, cache_store, source_db, make_row, now):
        """Postings gone from the source disappear from the cache."""
        source_db.add(make_row(1), make_row(2))
        orchestrator = _orchestrator(cache_store, source_db, now)
        orchestrator.full_sync()

        with source_db.engine.begin() as conn:
            conn.execute(source_db.table.delete().where(source_db.table.c.id == 2))
        source_db.add(make_row(3))
        orchestrator.full_sync()

        assert [p["id"] for p in _cached(cache_store)] == [1, 3]

    @pytest.mark.parametrize("strategy", ["swap", "in_place"])
    def test_batches(self, cache_store, source_db, make_row, now, strategy):
        """Row counts that are not a multiple of the batch size load fully."""
        source_db.add(*[make_row(i) for i in range(1, 8)])

        result = _orchestrator(cache_store, source_db, now, batch_size=3, load_strategy=strategy).full_sync()

        assert result.success
        assert cache_store.count_postings() == 7
        assert cache_store.count_postings(staging=True) == 0

    def test_empty_source(self, cache_store, source_db, now):
        result = _orchestrator(cache_store, source_db, now).full_sync()

        assert result.success
        assert result.total_processed == 0
        assert cache_store.get_sync_metadata()["status"] == "completed"


class TestSyncFailures:
    """Failed syncs are recorded and never raise."""

    def test_source_failure_recorded(self, cache_store, tmp_path, now):
        """A missing source table fails the sync and records the error."""
        empty_source = SourceStore(f"sqlite:///{tmp_path / 'empty.db'}", base_delay=0)
        orchestrator = SyncOrchestrator(
            cache_store,
            empty_source,
            settings=Settings(cache_db_path=cache_store.db_path),
            clock=lambda: now,
        )

        result = orchestrator.full_sync()
        meta = cache_store.get_sync_metadata()

        assert not result.success
        assert result.error
        assert meta["status"] == "failed"
        assert meta["error_message"] == result.error
        assert meta["lease_owner"] is None

    def test_swap_failure_keeps_previous_snapshot(self, cache_store, source_db, make_row, now, monkeypatch):
        source_db.add(make_row(1), make_row(2))
        orchestrator = _orchestrator(cache_store, source_db, now, batch_size=1)
        orchestrator.full_sync()
        before = _cached(cache_store)

        source_db.add(make_row(3))
        _fail_on_call(cache_store, monkeypatch, 2)
        result = orchestrator.full_sync()

        assert not result.success
        assert result.error == "disk I/O error"
        assert _cached(cache_store) == before
        assert cache_store.count_postings(staging=True) == 0
        meta = cache_store.get_sync_metadata()
        assert meta["status"] == "failed"
        assert meta["error_message"] == "disk I/O error"

    def test_in_place_failure_leaves_partial_table(self, cache_store, source_db, make_row, now, monkeypatch):
        """In-place loads keep the batches committed before the failure."""
        source_db.add(make_row(1), make_row(2), make_row(3))
        orchestrator = _orchestrator(cache_store, source_db, now, batch_size=1, load_strategy="in_place")

        _fail_on_call(cache_store, monkeypatch, 2)
        result = orchestrator.full_sync()

        assert not result.success
        assert [p["id"] for p in _cached(cache_store)] == [1]
        assert cache_store.get_sync_metadata()["status"] == "failed"

    def test_next_sync_recovers(self, cache_store, source_db, make_row, now, monkeypatch):
        source_db.add(make_row(1), make_row(2))
        orchestrator = _orchestrator(cache_store, source_db, now, batch_size=1)
        _fail_on_call(cache_store, monkeypatch, 1)
        assert not orchestrator.full_sync().success

        monkeypatch.undo()
        result = orchestrator.full_sync()

        assert result.success
        assert cache_store.get_sync_metadata()["status"] == "completed"
        assert cache_store.get_sync_metadata()["error_message"] is None


class TestReadsDuringLoad:
    """What a reader sees while a sync is still loading."""

    def test_in_place_readers_see_partial_table(self, cache_store, source_db, make_row, now, monkeypatch):
        """The live table is emptied first and grows one batch at a time."""
        source_db.add(make_row(1), make_row(2))
        orchestrator = _orchestrator(cache_store, source_db, now, batch_size=1, load_strategy="in_place")
        orchestrator.full_sync()

        source_db.add(make_row(3))
        seen = _observe_reads(cache_store, monkeypatch)
        result = orchestrator.full_sync()

        assert result.success
        assert seen == [("batch", []), ("batch", [1]), ("batch", [1, 2])]
        assert [p["id"] for p in _cached(cache_store)] == [1, 2, 3]

    def test_swap_readers_see_previous_snapshot(self, cache_store, source_db, make_row, now, monkeypatch):
        """The old rows stay visible until the swap commits."""
        source_db.add(make_row(1), make_row(2))
        orchestrator = _orchestrator(cache_store, source_db, now, batch_size=1)
        orchestrator.full_sync()

        source_db.add(make_row(3))
        seen = _observe_reads(cache_store, monkeypatch)
        result = orchestrator.full_sync()

        assert result.success
        assert seen == [
            ("batch", [1, 2]),
            ("batch", [1, 2]),
            ("batch", [1, 2]),
            ("swap", [1, 2]),
        ]
        assert [p["id"] for p in _cached(cache_store)] == [1, 2, 3]


class TestSyncConcurrency:
    """Only one sync runs at a time."""

    def test_held_lease_rejects_sync(self, cache_store, source_db, make_row, now):
        """Another process's lease is left alone."""
        source_db.add(make_row(1))
        cache_store.acquire_sync_lease("other-host:4242", now, 3600)

        result = _orchestrator(cache_store, source_db, now).full_sync()
        meta = cache_store.get_sync_metadata()

        assert not result.success
        assert result.error == SYNC_IN_PROGRESS
        assert meta["status"] == "syncing"
        assert meta["lease_owner"] == "other-host:4242"
        assert cache_store.count_postings() == 0

    def test_held_lock_rejects_sync(self, cache_store, source_db, make_row, now):
        source_db.add(make_row(1))
        lock = sync_lock(cache_store)
        lock.acquire()
        try:
            result = _orchestrator(cache_store, source_db, now).full_sync()
        finally:
            lock.release()

        assert result.error == SYNC_IN_PROGRESS
        assert cache_store.get_sync_metadata()["status"] == "never_synced"

    def test_expired_lease_taken_over(self, cache_store, source_db, make_row, now):
        """A lease left by a crashed sync does not block forever."""
        source_db.add(make_row(1))
        cache_store.acquire_sync_lease("crashed-host:1", now - timedelta(hours=2), 60)

        result = _orchestrator(cache_store, source_db, now).full_sync()

        assert result.success
        assert cache_store.get_sync_metadata()["lease_owner"] is None

    def test_lock_released_after_sync(self, cache_store, source_db, now):
        _orchestrator(cache_store, source_db, now).full_sync()

        lock = sync_lock(cache_store)
        assert lock.acquire(blocking=False)
        lock.release()
