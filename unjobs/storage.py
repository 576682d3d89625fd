"""
Cache store access: posting bulk loads, analytics cache and sync metadata.

No business logic lives here; callers decide what to write and when.
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from .database import (
    AnalyticsCacheEntry,
    CachedPosting,
    StagedPosting,
    SyncMetadata,
    get_session,
    init_database,
)

POSTING_FIELDS = [c.name for c in CachedPosting.__table__.columns]
METADATA_FIELDS = [c.name for c in SyncMetadata.__table__.columns]


def posting_to_dict(posting: CachedPosting) -> Dict[str, Any]:
    return {name: getattr(posting, name) for name in POSTING_FIELDS}


class CacheStore:
    """Read and write the SQLite cache at db_path."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def init(self) -> None:
        init_database(self.db_path)

    def session(self):
        return get_session(self.db_path)

    # Postings

    def insert_batch(self, rows: List[Dict[str, Any]], staging: bool = False) -> int:
        """Insert rows in a single transaction. Nothing is kept if it fails."""
        if not rows:
            return 0
        model = StagedPosting if staging else CachedPosting
        session = self.session()
        try:
            session.execute(insert(model), rows)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        return len(rows)

    def _clear(self, model) -> int:
        session = self.session()
        try:
            deleted = session.execute(delete(model)).rowcount
            session.commit()
            return deleted
        finally:
            session.close()

    def clear_postings(self) -> int:
        return self._clear(CachedPosting)

    def clear_staging(self) -> int:
        return self._clear(StagedPosting)

    def swap_in_staging(self) -> int:
        """
        Replace the live postings with the staged ones in one transaction.

        Readers see either the previous snapshot or the new one.
        """
        live = CachedPosting.__table__
        staged = StagedPosting.__table__
        columns = [c.name for c in live.columns]
        session = self.session()
        try:
            session.execute(delete(live))
            session.execute(
                live.insert().from_select(columns, select(*[staged.c[name] for name in columns]))
            )
            session.execute(delete(staged))
            session.commit()
            return session.execute(select(func.count()).select_from(live)).scalar_one()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def count_postings(self, staging: bool = False) -> int:
        model = StagedPosting if staging else CachedPosting
        session = self.session()
        try:
            return session.query(model).count()
        finally:
            session.close()

    def has_data(self) -> bool:
        return self.count_postings() > 0

    # Analytics cache

    def put_analytics(self, key: str, data: Any, now: datetime, ttl_hours: int) -> None:
        """Insert or overwrite a cached aggregate."""
        values = {
            "cache_key": key,
            "data": data,
            "created_at": now,
            "expires_at": now + timedelta(hours=ttl_hours),
        }
        stmt = sqlite_insert(AnalyticsCacheEntry).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["cache_key"],
            set_={k: stmt.excluded[k] for k in ("data", "created_at", "expires_at")},
        )
        session = self.session()
        try:
            session.execute(stmt)
            session.commit()
        finally:
            session.close()

    def get_analytics(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the raw cache entry for key, expired or not."""
        session = self.session()
        try:
            entry = session.query(AnalyticsCacheEntry).filter_by(cache_key=key).first()
            if entry is None:
                return None
            return {
                "cache_key": entry.cache_key,
                "data": entry.data,
                "created_at": entry.created_at,
                "expires_at": entry.expires_at,
            }
        finally:
            session.close()

    def purge_expired_analytics(self, now: datetime) -> int:
        session = self.session()
        try:
            deleted = session.execute(
                delete(AnalyticsCacheEntry).where(AnalyticsCacheEntry.expires_at <= now)
            ).rowcount
            session.commit()
            return deleted
        finally:
            session.close()

    # Sync metadata

    def get_sync_metadata(self) -> Dict[str, Any]:
        session = self.session()
        try:
            meta = session.get(SyncMetadata, 1)
            if meta is None:
                return {"id": 1, "status": "never_synced", "total_jobs": 0}
            return {name: getattr(meta, name) for name in METADATA_FIELDS}
        finally:
            session.close()

    def update_sync_metadata(self, **fields) -> None:
        unknown = set(fields) - set(METADATA_FIELDS)
        if unknown:
            raise ValueError(f"Unknown sync metadata fields: {', '.join(sorted(unknown))}")
        session = self.session()
        try:
            session.execute(update(SyncMetadata).where(SyncMetadata.id == 1).values(**fields))
            session.commit()
        finally:
            session.close()

    def acquire_sync_lease(self, owner: str, now: datetime, lease_seconds: int) -> bool:
        """
        Take the sync lease if it is free or expired, and mark the sync started.

        Returns False without changing anything when another owner holds a
        live lease.
        """
        stmt = (
            update(SyncMetadata)
            .where(SyncMetadata.id == 1)
            .where(
                or_(
                    SyncMetadata.lease_owner.is_(None),
                    SyncMetadata.lease_expires_at.is_(None),
                    SyncMetadata.lease_expires_at < now,
                )
            )
            .values(
                lease_owner=owner,
                lease_expires_at=now + timedelta(seconds=lease_seconds),
                status="syncing",
                last_sync_at=now,
                error_message=None,
            )
        )
        session = self.session()
        try:
            acquired = session.execute(stmt).rowcount == 1
            session.commit()
            return acquired
        finally:
            session.close()

    def release_sync_lease(self, owner: str) -> None:
        session = self.session()
        try:
            session.execute(
                update(SyncMetadata)
                .where(SyncMetadata.id == 1)
                .where(SyncMetadata.lease_owner == owner)
                .values(lease_owner=None, lease_expires_at=None)
            )
            session.commit()
        finally:
            session.close()
