"""
Read-side queries over the posting cache: filtered and paginated listings,
single-posting lookup, filter options and sync status.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_

from .database import CachedPosting
from .storage import CacheStore, posting_to_dict

SORT_COLUMNS = {
    "posting_date": CachedPosting.posting_date,
    "confidence": CachedPosting.classification_confidence,
    "title": CachedPosting.title,
    "days_remaining": CachedPosting.days_remaining,
    "id": CachedPosting.id,
}
DEFAULT_SORT = "posting_date"
DEFAULT_LIMIT = 50
MAX_LIMIT = 200


@dataclass
class PostingQuery:
    """Filters, sort and page for a posting listing. "all" disables a filter."""

    category: Optional[str] = None
    agency: Optional[str] = None
    status: Optional[str] = None
    search: Optional[str] = None
    country: Optional[str] = None
    grade: Optional[str] = None
    sort: str = DEFAULT_SORT
    order: str = "desc"
    page: int = 1
    limit: int = DEFAULT_LIMIT


@dataclass
class Page:
    items: List[Dict[str, Any]] = field(default_factory=list)
    page: int = 1
    limit: int = DEFAULT_LIMIT
    total: int = 0
    total_pages: int = 0


def _active(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() != "all"


def apply_filters(q, query: PostingQuery):
    if _active(query.category):
        q = q.filter(CachedPosting.primary_category == query.category)
    if _active(query.agency):
        q = q.filter(or_(
            CachedPosting.short_agency == query.agency,
            CachedPosting.long_agency == query.agency,
        ))
    if _active(query.status):
        q = q.filter(CachedPosting.status == query.status)
    if _active(query.country):
        q = q.filter(CachedPosting.duty_country == query.country)
    if _active(query.grade):
        # prefix match, so "P-" selects the whole band and idx_postings_grade applies
        q = q.filter(CachedPosting.up_grade.like(f"{query.grade.strip().upper()}%"))
    if query.search and query.search.strip():
        term = query.search.strip().lower()
        q = q.filter(or_(
            func.lower(CachedPosting.title).contains(term, autoescape=True),
            func.lower(CachedPosting.job_labels).contains(term, autoescape=True),
            func.lower(CachedPosting.description).contains(term, autoescape=True),
        ))
    return q


def search_postings(session, query: PostingQuery) -> Page:
    """
    Filtered, sorted page of postings.

    Unknown sort keys fall back to posting_date; ties are broken by id in the
    same direction.
    """
    page = max(1, int(query.page or 1))
    limit = min(MAX_LIMIT, max(1, int(query.limit or DEFAULT_LIMIT)))
    column = SORT_COLUMNS.get(query.sort, SORT_COLUMNS[DEFAULT_SORT])
    descending = (query.order or "desc").lower() != "asc"

    q = apply_filters(session.query(CachedPosting), query)
    total = q.count()
    if descending:
        q = q.order_by(column.desc(), CachedPosting.id.desc())
    else:
        q = q.order_by(column.asc(), CachedPosting.id.asc())
    items = [posting_to_dict(p) for p in q.offset((page - 1) * limit).limit(limit)]

    return Page(
        items=items,
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
    )


def get_posting(session, posting_id: int) -> Optional[Dict[str, Any]]:
    posting = session.get(CachedPosting, posting_id)
    return posting_to_dict(posting) if posting else None


def _distinct_counts(session, column) -> List[Dict[str, Any]]:
    rows = (
        session.query(column, func.count(CachedPosting.id))
        .filter(column.isnot(None), column != "")
        .group_by(column)
        .order_by(func.count(CachedPosting.id).desc(), column)
        .all()
    )
    return [{"value": value, "count": count} for value, count in rows]


def filter_options(session) -> Dict[str, List[Dict[str, Any]]]:
    """Values present in the cache for each filterable field, with counts."""
    return {
        "categories": _distinct_counts(session, CachedPosting.primary_category),
        "agencies": _distinct_counts(session, CachedPosting.short_agency),
        "statuses": _distinct_counts(session, CachedPosting.status),
        "countries": _distinct_counts(session, CachedPosting.duty_country),
        "grades": _distinct_counts(session, CachedPosting.up_grade),
    }


def get_sync_status(store: CacheStore) -> Dict[str, Any]:
    """Sync metadata plus whether the cache holds any postings."""
    status = store.get_sync_metadata()
    status["has_data"] = store.has_data()
    return status
