"""
Cleanup module for expired analytics cache entries.

Entries past their expiry are already ignored by readers; purging them keeps
the cache table small between syncs.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

from .lifecycle import utcnow
from .logger import get_logger
from .storage import CacheStore

logger = get_logger()


def purge_expired_analytics(db_path: Path, now: Optional[datetime] = None) -> int:
    """
    Delete analytics entries whose expiry is at or before now.

    Args:
        db_path: Path to the cache database
        now: Reference time (default: current UTC time)

    Returns:
        Number of entries removed, 0 if the purge failed
    """
    now = now or utcnow()
    try:
        removed = CacheStore(db_path).purge_expired_analytics(now)
        logger.info(f"Cleanup complete: {removed} expired analytics entries removed", db=str(db_path))
        return removed
    except Exception as e:
        logger.error(f"Cleanup failed: {e}", error=str(e), db=str(db_path))
        return 0
