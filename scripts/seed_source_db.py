#!/usr/bin/env python3
"""
Seed a local source database from a JSON export of postings.

The JSON file holds a list of posting objects using the source column names
(id, title, description, job_labels, short_agency, ...). Useful for running
syncs without access to the production source.

Usage:
    python scripts/seed_source_db.py --json data/postings.json --db data/source.db
"""

import argparse
import json
from pathlib import Path
import sys

from sqlalchemy import MetaData, create_engine, delete, insert

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from unjobs.schema import validate_source_row
from unjobs.source import SOURCE_COLUMNS, define_source_table


def seed(json_path: Path, db_path: Path, replace: bool = False, dry_run: bool = False) -> bool:
    """
    Load postings from JSON into the source `jobs` table.

    Args:
        json_path: Path to JSON export (a list of postings)
        db_path: Path to SQLite source database
        replace: Delete existing source rows first
        dry_run: If True, don't write to database
    """
    print(f"Loading postings from {json_path}...")
    with open(json_path, encoding="utf-8") as f:
        postings = json.load(f)
    if isinstance(postings, dict):
        postings = postings.get("jobs", [])
    print(f"Found {len(postings)} postings")

    rows = []
    skipped = 0
    for posting in postings:
        errors = validate_source_row(posting)
        if errors:
            print(f"⚠️  Skipping {posting.get('id')}: {'; '.join(errors)}")
            skipped += 1
            continue
        rows.append({name: posting.get(name) for name in SOURCE_COLUMNS})

    if dry_run:
        print(f"\n[DRY RUN] Would insert {len(rows)} postings, skip {skipped}")
        for row in rows[:5]:
            print(f"  {row['id']}: {row.get('short_agency')} - {row['title']}")
        if len(rows) > 5:
            print(f"  ... and {len(rows) - 5} more")
        return True

    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    metadata = MetaData()
    table = define_source_table(metadata)
    metadata.create_all(engine)

    try:
        with engine.begin() as conn:
            if replace:
                conn.execute(delete(table))
            if rows:
                conn.execute(insert(table), rows)
    except Exception as e:
        print(f"❌ Failed to seed: {e}")
        return False

    print(f"\n✅ Seed complete!")
    print(f"   Inserted: {len(rows)}")
    print(f"   Skipped:  {skipped}")
    return True


def main():
    parser = argparse.ArgumentParser(description="Seed a local source database from JSON")
    parser.add_argument("--json", type=Path, required=True,
                       help="Path to JSON export of postings")
    parser.add_argument("--db", type=Path, default=Path("data/source.db"),
                       help="Path to SQLite source database")
    parser.add_argument("--replace", action="store_true",
                       help="Delete existing source rows before inserting")
    parser.add_argument("--dry-run", action="store_true",
                       help="Show what would be inserted without writing")

    args = parser.parse_args()

    if not args.json.exists():
        print(f"❌ JSON file not found: {args.json}")
        sys.exit(1)

    success = seed(args.json, args.db, replace=args.replace, dry_run=args.dry_run)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
