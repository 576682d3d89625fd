"""
Dashboard aggregates over the posting cache.

Each aggregate issues grouped queries through a PostingScope, which limits
them to one agency when asked. AnalyticsPrecomputer stores every aggregate
under a `dashboard:*` key after a sync; AnalyticsReader serves fresh cached
values and falls back to live computation when an entry is missing or
expired.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import distinct, func

from .database import CachedPosting
from .dictionary import CategoryDictionary, default_dictionary
from .lifecycle import utcnow
from .logger import get_logger
from .normalize import split_labels
from .storage import CacheStore

logger = get_logger()

CACHE_PREFIX = "dashboard:"
MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
TREND_MONTHS = 6
SERIES_MONTHS = 12

POSTINGS = func.count(CachedPosting.id)
MONTH = func.strftime("%Y-%m", CachedPosting.posting_date)
MONTH_OF_YEAR = func.strftime("%m", CachedPosting.posting_date)


def _distinct(column):
    """COUNT(DISTINCT column), ignoring NULL and empty strings."""
    return func.count(distinct(func.nullif(column, "")))


def _avg(column):
    # NULL counts as zero
    return func.avg(func.coalesce(column, 0))


def _present(column):
    return func.coalesce(column, "") != ""


def _round(value: Any, digits: int = 1) -> float:
    return round(float(value), digits) if value is not None else 0.0


def _pct(part: float, whole: float, digits: int = 2) -> float:
    return round(part / whole * 100, digits) if whole else 0.0


def _ranked(counter: Counter, limit: Optional[int] = None) -> List[tuple]:
    """Counter items by count descending, then key, for stable output."""
    items = sorted(counter.items(), key=lambda kv: (-kv[1], str(kv[0])))
    return items[:limit] if limit else items


def _shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def trailing_months(now: datetime, count: int) -> List[Tuple[int, int]]:
    """(year, month) pairs for the last count calendar months, oldest first."""
    return [_shift_month(now.year, now.month, -i) for i in range(count - 1, -1, -1)]


def _window(months: List[Tuple[int, int]]) -> list:
    """Half-open posting date range covering the given calendar months."""
    first_year, first_month = months[0]
    end_year, end_month = _shift_month(*months[-1], 1)
    return [
        CachedPosting.posting_date >= datetime(first_year, first_month, 1),
        CachedPosting.posting_date < datetime(end_year, end_month, 1),
    ]


class PostingScope:
    """Query builder over cached postings, optionally for a single agency."""

    def __init__(self, session, agency: Optional[str] = None):
        self.session = session
        self.agency = agency

    def query(self, *columns):
        q = self.session.query(*columns).select_from(CachedPosting)
        if self.agency:
            q = q.filter(CachedPosting.short_agency == self.agency)
        return q

    def count(self, *criteria) -> int:
        return self.query(POSTINGS).filter(*criteria).scalar() or 0

    def grouped(self, *columns, criteria=(), limit: Optional[int] = None) -> List[tuple]:
        """Rows of (*columns, count), largest count first, then by column values."""
        q = (
            self.query(*columns, POSTINGS)
            .filter(*criteria)
            .group_by(*columns)
            .order_by(POSTINGS.desc(), *columns)
        )
        if limit:
            q = q.limit(limit)
        return [tuple(row) for row in q]

    def monthly(self, column, key: str, months: int, now: datetime, by_month: bool = False) -> List[Dict[str, Any]]:
        """
        Per-value monthly counts over the trailing calendar months.

        Ordered by value then month, or by month then value when by_month is
        set. Months without postings are left out.
        """
        order = (MONTH, column) if by_month else (column, MONTH)
        rows = (
            self.query(column, MONTH, POSTINGS)
            .filter(_present(column), *_window(trailing_months(now, months)))
            .group_by(column, MONTH)
            .order_by(*order)
        )
        return [{"month": month, key: value, "count": count} for value, month, count in rows]


def market_concentration(volumes: List[int]) -> Dict[str, float]:
    """
    Herfindahl-Hirschman index and top-N cumulative shares.

    volumes must be ordered largest first. HHI is the sum of squared
    percentage shares divided by 10000, so 1.0 means a single agency.
    """
    total = sum(volumes)
    if total == 0:
        return {"hhi": 0.0, "top3_share": 0.0, "top5_share": 0.0, "top10_share": 0.0}
    shares = [v / total * 100 for v in volumes]
    return {
        "hhi": round(sum(s * s for s in shares) / 10000, 3),
        "top3_share": round(sum(shares[:3]), 2),
        "top5_share": round(sum(shares[:5]), 2),
        "top10_share": round(sum(shares[:10]), 2),
    }


def compute_overview(scope: PostingScope, now: datetime, names: Dict[str, str]) -> Dict[str, Any]:
    statuses = dict(scope.grouped(CachedPosting.status))
    agencies, countries, departments, avg_confidence, avg_window = scope.query(
        _distinct(CachedPosting.short_agency),
        _distinct(CachedPosting.duty_country),
        _distinct(CachedPosting.department),
        _avg(CachedPosting.classification_confidence),
        _avg(CachedPosting.application_window_days),
    ).one()

    top_categories = scope.grouped(
        CachedPosting.primary_category,
        criteria=[_present(CachedPosting.primary_category)],
        limit=10,
    )
    top_total = sum(count for _, count in top_categories)
    top_agencies = scope.grouped(
        CachedPosting.short_agency,
        criteria=[_present(CachedPosting.short_agency)],
        limit=10,
    )

    return {
        "total_postings": scope.count(),
        "total_agencies": agencies,
        "total_countries": countries,
        "total_departments": departments,
        "active": statuses.get("active", 0),
        "closing_soon": statuses.get("closing_soon", 0),
        "expired": statuses.get("expired", 0) + statuses.get("archived", 0),
        "avg_confidence": _round(avg_confidence),
        "avg_application_window": _round(avg_window),
        # share of the postings in the top ten, not of all postings
        "top_categories": [
            {
                "category": cid,
                "name": names.get(cid, cid),
                "count": count,
                "percentage": _pct(count, top_total),
            }
            for cid, count in top_categories
        ],
        "top_agencies": [{"agency": a, "count": c} for a, c in top_agencies],
    }


def compute_categories(scope: PostingScope, now: datetime, names: Dict[str, str]) -> Dict[str, Any]:
    category = CachedPosting.primary_category
    rows = (
        scope.query(
            category,
            POSTINGS,
            _avg(CachedPosting.classification_confidence),
            _distinct(CachedPosting.short_agency),
            _distinct(CachedPosting.duty_country),
        )
        .filter(_present(category))
        .group_by(category)
        .order_by(POSTINGS.desc(), category)
        .all()
    )
    total = sum(row[1] for row in rows)
    rank = {row[0]: index for index, row in enumerate(rows)}

    by_seniority = sorted(
        scope.grouped(
            category,
            CachedPosting.seniority_level,
            criteria=[_present(category), _present(CachedPosting.seniority_level)],
        ),
        key=lambda r: (rank[r[0]], -r[2], r[1]),
    )

    return {
        "total_categories": len(rows),
        "categories": [
            {
                "category": cid,
                "name": names.get(cid, cid),
                "total": count,
                "percentage": _pct(count, total),
                "avg_confidence": _round(avg_confidence),
                "agencies_count": agencies,
                "countries_count": countries,
            }
            for cid, count, avg_confidence, agencies, countries in rows
        ],
        "category_by_seniority": [
            {"category": cid, "seniority_level": level, "count": count}
            for cid, level, count in by_seniority
        ],
        "category_trends": scope.monthly(category, "category", TREND_MONTHS, now),
    }


def _agency_rows(scope: PostingScope) -> List[tuple]:
    """(agency, postings, categories, countries, mean window), largest first."""
    agency = CachedPosting.short_agency
    return (
        scope.query(
            agency,
            POSTINGS,
            _distinct(CachedPosting.primary_category),
            _distinct(CachedPosting.duty_country),
            _avg(CachedPosting.application_window_days),
        )
        .filter(_present(agency))
        .group_by(agency)
        .order_by(POSTINGS.desc(), agency)
        .all()
    )


def compute_agencies(scope: PostingScope, now: datetime, names: Dict[str, str]) -> Dict[str, Any]:
    agency = CachedPosting.short_agency
    rows = _agency_rows(scope)
    total = sum(row[1] for row in rows)
    rank = {row[0]: index for index, row in enumerate(rows)}

    by_category = sorted(
        scope.grouped(
            agency,
            CachedPosting.primary_category,
            criteria=[_present(agency), _present(CachedPosting.primary_category)],
        ),
        key=lambda r: (rank[r[0]], -r[2], r[1]),
    )

    return {
        "total_agencies": len(rows),
        "agencies": [
            {
                "agency": name,
                "total": count,
                "market_share": _pct(count, total),
                "categories_count": categories,
                "countries_count": countries,
                "avg_window": _round(avg_window),
            }
            for name, count, categories, countries, avg_window in rows
        ],
        "agency_by_category": [
            {"agency": name, "category": cid, "count": count}
            for name, cid, count in by_category
        ],
        "agency_trends": scope.monthly(agency, "agency", TREND_MONTHS, now),
    }


def compute_temporal(scope: PostingScope, now: datetime, names: Dict[str, str]) -> Dict[str, Any]:
    """Monthly volumes for the trailing 12 calendar months, current month included."""
    months = trailing_months(now, SERIES_MONTHS)
    counts = {
        month: (total, agencies, categories)
        for month, total, agencies, categories in (
            scope.query(
                MONTH,
                POSTINGS,
                _distinct(CachedPosting.short_agency),
                _distinct(CachedPosting.primary_category),
            )
            .filter(*_window(months))
            .group_by(MONTH)
        )
    }

    monthly = []
    for year, month in months:
        key = f"{year:04d}-{month:02d}"
        total, agencies, categories = counts.get(key, (0, 0, 0))
        monthly.append({"month": key, "total": total, "agencies": agencies, "categories": categories})

    growth = 0.0
    previous, current = monthly[-2]["total"], monthly[-1]["total"]
    if previous:
        growth = round((current - previous) / previous * 100, 1)

    seasonal = {
        int(month): count
        for month, count in (
            scope.query(MONTH_OF_YEAR, POSTINGS)
            .filter(CachedPosting.posting_date.isnot(None))
            .group_by(MONTH_OF_YEAR)
        )
    }

    return {
        "monthly_postings": monthly,
        "month_over_month_growth": growth,
        "seasonal_patterns": [
            {"month": n, "name": MONTH_NAMES[n - 1], "count": seasonal.get(n, 0)}
            for n in range(1, 13)
        ],
        "category_time_series": scope.monthly(
            CachedPosting.primary_category, "category", SERIES_MONTHS, now, by_month=True
        ),
        "agency_time_series": scope.monthly(
            CachedPosting.short_agency, "agency", SERIES_MONTHS, now, by_month=True
        ),
    }


def compute_workforce(scope: PostingScope, now: datetime, names: Dict[str, str]) -> Dict[str, Any]:
    def distribution(column, key, limit=None):
        return [
            {key: value, "count": count}
            for value, count in scope.grouped(column, criteria=[_present(column)], limit=limit)
        ]

    experience = {}
    for field in ("hs_min_exp", "bachelor_min_exp", "master_min_exp"):
        column = getattr(CachedPosting, field)
        avg, low, high, count = scope.query(
            func.avg(column), func.min(column), func.max(column), func.count(column)
        ).one()
        experience[field] = {
            "avg": _round(avg),
            "min": low if low is not None else 0,
            "max": high if high is not None else 0,
            "count": count,
        }

    return {
        "grade_distribution": distribution(CachedPosting.up_grade, "grade"),
        "seniority_distribution": distribution(CachedPosting.seniority_level, "seniority_level"),
        "location_type_distribution": distribution(CachedPosting.location_type, "location_type"),
        "country_distribution": distribution(CachedPosting.duty_country, "country", limit=20),
        "experience": experience,
    }


def compute_skills(scope: PostingScope, now: datetime, names: Dict[str, str]) -> Dict[str, Any]:
    """Label histograms. Labels are comma-separated text, so they are split here rather than in SQL."""
    overall = Counter()
    per_category: Dict[str, Counter] = defaultdict(Counter)
    postings = 0
    for job_labels, category in scope.query(CachedPosting.job_labels, CachedPosting.primary_category):
        postings += 1
        labels = split_labels(job_labels)
        overall.update(labels)
        if category:
            per_category[category].update(labels)

    return {
        "top_skills": [{"skill": s, "count": c} for s, c in _ranked(overall, 50)],
        "total_unique_skills": len(overall),
        "avg_skills_per_posting": round(sum(overall.values()) / postings, 1) if postings else 0.0,
        "top_skills_by_category": [
            {
                "category": cid,
                "skills": [{"skill": s, "count": c} for s, c in _ranked(per_category[cid], 10)],
            }
            for cid in sorted(per_category)
        ],
    }


def compute_competitive(scope: PostingScope, now: datetime, names: Dict[str, str]) -> Dict[str, Any]:
    rows = _agency_rows(scope)
    total = sum(row[1] for row in rows)

    leaders: Dict[str, Dict[str, Any]] = {}
    in_category: Counter = Counter()
    for cid, agency, count in scope.grouped(
        CachedPosting.primary_category,
        CachedPosting.short_agency,
        criteria=[_present(CachedPosting.primary_category), _present(CachedPosting.short_agency)],
    ):
        in_category[cid] += count
        # rows arrive largest first, ties by agency name
        if cid not in leaders:
            leaders[cid] = {"category": cid, "leading_agency": agency, "leading_count": count}
    for cid, leader in leaders.items():
        leader["total_in_category"] = in_category[cid]
        leader["leading_share"] = _pct(leader["leading_count"], in_category[cid])

    return {
        "agency_positioning": [
            {
                "agency": agency,
                "volume": count,
                "market_share": _pct(count, total),
                "category_diversity": categories,
                "geographic_reach": countries,
                "avg_window": _round(avg_window),
            }
            for agency, count, categories, countries, avg_window in rows
        ],
        "category_dominance": [leaders[cid] for cid in sorted(leaders)],
        "market_concentration": market_concentration([row[1] for row in rows]),
    }


AGGREGATES: Dict[str, Callable[[PostingScope, datetime, Dict[str, str]], Dict[str, Any]]] = {
    "overview": compute_overview,
    "categories": compute_categories,
    "agencies": compute_agencies,
    "temporal": compute_temporal,
    "workforce": compute_workforce,
    "skills": compute_skills,
    "competitive": compute_competitive,
}


def cache_key(name: str) -> str:
    return f"{CACHE_PREFIX}{name}"


class AnalyticsPrecomputer:
    """Computes and caches every dashboard aggregate."""

    def __init__(
        self,
        store: CacheStore,
        ttl_hours: int = 24,
        dictionary: Optional[CategoryDictionary] = None,
        aggregates: Optional[Dict[str, Callable]] = None,
    ):
        self.store = store
        self.ttl_hours = ttl_hours
        dictionary = dictionary or default_dictionary()
        self.names = {c.id: c.name for c in dictionary.categories}
        self.aggregates = aggregates if aggregates is not None else AGGREGATES

    def precompute_all(self, now: Optional[datetime] = None) -> Dict[str, bool]:
        """
        Compute and cache each aggregate independently.

        Returns a mapping of cache key to success. A failing aggregate is
        logged and leaves the others untouched.
        """
        now = now or utcnow()
        results = {}
        session = self.store.session()
        try:
            scope = PostingScope(session)
            for name, compute in self.aggregates.items():
                key = cache_key(name)
                try:
                    data = compute(scope, now, self.names)
                    self.store.put_analytics(key, data, now, self.ttl_hours)
                    results[key] = True
                    logger.record_aggregate(True)
                    logger.debug("Cached aggregate", key=key)
                except Exception as e:
                    session.rollback()
                    results[key] = False
                    logger.record_aggregate(False)
                    logger.record_error(type(e).__name__)
                    logger.error(f"Aggregate failed: {key}", error=str(e))
        finally:
            session.close()
        return results


@dataclass
class CachedAnalytics:
    data: Any
    created_at: datetime
    expires_at: datetime
    is_fresh: bool
    cached: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_fresh": self.is_fresh,
            "cached": self.cached,
        }


class AnalyticsReader:
    """Serves aggregates from the cache, computing live on a miss."""

    def __init__(
        self,
        store: CacheStore,
        clock: Callable[[], datetime] = utcnow,
        dictionary: Optional[CategoryDictionary] = None,
    ):
        self.store = store
        self.clock = clock
        dictionary = dictionary or default_dictionary()
        self.names = {c.id: c.name for c in dictionary.categories}

    def get_cached_analytics(self, key: str) -> Optional[CachedAnalytics]:
        """Cache entry for key with its freshness, or None if never cached."""
        entry = self.store.get_analytics(key)
        if entry is None:
            return None
        return CachedAnalytics(
            data=entry["data"],
            created_at=entry["created_at"],
            expires_at=entry["expires_at"],
            is_fresh=entry["expires_at"] > self.clock(),
        )

    def compute_live(self, name: str, agency: Optional[str] = None) -> CachedAnalytics:
        if name not in AGGREGATES:
            raise KeyError(f"Unknown aggregate: {name}")
        now = self.clock()
        session = self.store.session()
        try:
            data = AGGREGATES[name](PostingScope(session, agency=agency), now, self.names)
        finally:
            session.close()
        return CachedAnalytics(data=data, created_at=now, expires_at=now, is_fresh=False, cached=False)

    def get(self, name: str, agency: Optional[str] = None) -> CachedAnalytics:
        """
        Aggregate by short name ("overview", "skills", ...).

        A fresh cache entry is returned as-is. Missing or expired entries, and
        any agency-filtered request, are computed live.
        """
        if name not in AGGREGATES:
            raise KeyError(f"Unknown aggregate: {name}")
        if not agency:
            cached = self.get_cached_analytics(cache_key(name))
            if cached is not None and cached.is_fresh:
                return cached
            logger.debug("Analytics cache miss, computing live", key=cache_key(name))
        return self.compute_live(name, agency=agency)
