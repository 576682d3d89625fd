#!/usr/bin/env python3
"""
Compare posting counts between the source database and the cache.

The cache should hold one row per unique natural key (URL, else id) in the
source, minus rows skipped by validation.

Usage:
    python scripts/verify_counts.py --source sqlite:///data/source.db --db data/jobs_cache.db
"""

import argparse
from collections import Counter
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from unjobs.database import CachedPosting, get_session
from unjobs.source import SourceStore, dedup_postings
from unjobs.storage import CacheStore


def verify(source_url: str, db_path: Path) -> bool:
    """
    Compare source and cache contents.

    Returns True if every unique source posting is cached, False otherwise.
    """
    print(f"Reading source {source_url}...")
    source = SourceStore(source_url)
    rows = source.fetch_rows()
    unique = dedup_postings(rows)
    print(f"  Source: {len(rows)} rows, {len(unique)} unique postings")

    print(f"\nQuerying cache at {db_path}...")
    session = get_session(db_path)
    try:
        cached_ids = {p.id for p in session.query(CachedPosting.id)}
        urls = Counter(p.url for p in session.query(CachedPosting.url) if p.url)
    finally:
        session.close()
    meta = CacheStore(db_path).get_sync_metadata()
    print(f"  Cache:  {len(cached_ids)} postings (last sync: {meta.get('status')}, {meta.get('total_jobs')} jobs)")

    ok = True
    missing = [r["id"] for r in unique if int(r["id"]) not in cached_ids]
    if missing:
        ok = False
        print(f"\n❌ MISSING from cache: {len(missing)} postings")
        for job_id in missing[:5]:
            print(f"   - {job_id}")
        if len(missing) > 5:
            print(f"   ... and {len(missing) - 5} more")

    duplicates = [url for url, count in urls.items() if count > 1]
    if duplicates:
        ok = False
        print(f"\n❌ DUPLICATE URLs in cache: {len(duplicates)}")
        for url in duplicates[:5]:
            print(f"   - {url}")

    if ok:
        print("\n✅ Cache matches source!")
        print("   - Every unique source posting is cached")
        print("   - No duplicate URLs")
    return ok


def main():
    parser = argparse.ArgumentParser(description="Compare source and cache posting counts")
    parser.add_argument("--source", required=True,
                       help="Source SQLAlchemy URL")
    parser.add_argument("--db", type=Path, default=Path("data/jobs_cache.db"),
                       help="Path to SQLite cache database")

    args = parser.parse_args()

    if not args.db.exists():
        print(f"❌ Cache database not found: {args.db}")
        sys.exit(1)

    success = verify(args.source, args.db)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
