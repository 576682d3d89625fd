"""
Tests for dashboard aggregates and the analytics cache.
"""

from datetime import datetime, timedelta

import pytest

from unjobs.analytics import (
    AGGREGATES,
    AnalyticsPrecomputer,
    AnalyticsReader,
    PostingScope,
    cache_key,
    compute_agencies,
    compute_categories,
    compute_competitive,
    compute_overview,
    compute_skills,
    compute_temporal,
    compute_workforce,
    market_concentration,
    trailing_months,
)

NOW = datetime(2025, 6, 15, 12, 0, 0)
NAMES = {"digital-technology": "Digital & Technology", "health-medical": "Health & Medical"}


def _row(job_id, **values):
    row = {
        "id": job_id,
        "title": f"Posting {job_id}",
        "short_agency": "UNDP",
        "duty_country": "Kenya",
        "department": None,
        "up_grade": None,
        "job_labels": None,
        "primary_category": "digital-technology",
        "classification_confidence": 80,
        "seniority_level": "Mid-Level",
        "location_type": "HQ",
        "status": "active",
        "posting_date": datetime(2025, 6, 1),
        "application_window_days": 30,
        "hs_min_exp": None,
        "bachelor_min_exp": None,
        "master_min_exp": None,
        "processed_at": NOW,
    }
    row.update(values)
    return row


@pytest.fixture
def scope_for(cache_store):
    """Load rows into the cache and return a query scope over them."""
    sessions = []

    def build(rows, agency=None):
        cache_store.insert_batch(rows)
        session = cache_store.session()
        sessions.append(session)
        return PostingScope(session, agency=agency)

    yield build
    for session in sessions:
        session.close()


@pytest.fixture
def scope(scope_for):
    return scope_for([
        _row(1, job_labels="Python, Data Analysis", hs_min_exp=7),
        _row(2, job_labels="Python", classification_confidence=60, status="closing_soon"),
        _row(3, short_agency="WHO", duty_country="Switzerland", status="expired",
             application_window_days=10, posting_date=datetime(2025, 5, 10)),
        _row(4, short_agency="WHO", primary_category="health-medical", status="archived",
             seniority_level="Senior", posting_date=datetime(2025, 5, 20), job_labels="Public Health"),
    ])


class TestMarketConcentration:
    """Herfindahl-Hirschman index and top-N shares."""

    def test_single_agency(self):
        assert market_concentration([10])["hhi"] == 1.0

    def test_even_split(self):
        result = market_concentration([50, 50])

        assert result["hhi"] == 0.5
        assert result["top3_share"] == 100.0

    def test_top_shares(self):
        result = market_concentration([40, 30, 10, 10, 5, 5])

        assert result["top3_share"] == 80.0
        assert result["top5_share"] == 95.0
        assert result["top10_share"] == 100.0
        assert result["hhi"] == 0.275

    def test_empty(self):
        assert market_concentration([]) == {
            "hhi": 0.0, "top3_share": 0.0, "top5_share": 0.0, "top10_share": 0.0,
        }


class TestAggregates:
    """Each aggregate over a small fixed set of cached postings."""

    def test_registered_aggregates(self):
        assert sorted(AGGREGATES) == [
            "agencies", "categories", "competitive", "overview", "skills", "temporal", "workforce",
        ]

    def test_overview(self, scope):
        data = compute_overview(scope, NOW, NAMES)

        assert data["total_postings"] == 4
        assert data["total_agencies"] == 2
        assert data["total_countries"] == 2
        assert data["total_departments"] == 0
        assert data["active"] == 1
        assert data["closing_soon"] == 1
        assert data["expired"] == 2
        assert data["avg_confidence"] == 75.0
        assert data["top_categories"][0] == {
            "category": "digital-technology",
            "name": "Digital & Technology",
            "count": 3,
            "percentage": 75.0,
        }
        assert data["top_agencies"] == [{"agency": "UNDP", "count": 2}, {"agency": "WHO", "count": 2}]

    def test_overview_for_one_agency(self, scope_for):
        """A scope limited to one agency only counts that agency's postings."""
        scope = scope_for([_row(1), _row(2, short_agency="WHO"), _row(3, short_agency="WHO")], agency="WHO")
        data = compute_overview(scope, NOW, NAMES)

        assert data["total_postings"] == 2
        assert data["total_agencies"] == 1

    def test_categories(self, scope):
        data = compute_categories(scope, NOW, NAMES)

        assert data["total_categories"] == 2
        digital = data["categories"][0]
        assert digital["category"] == "digital-technology"
        assert digital["total"] == 3
        assert digital["percentage"] == 75.0
        assert digital["avg_confidence"] == 73.3
        assert digital["agencies_count"] == 2
        assert digital["countries_count"] == 2
        assert data["category_by_seniority"][0] == {
            "category": "digital-technology", "seniority_level": "Mid-Level", "count": 3,
        }
        assert {"category": "health-medical", "seniority_level": "Senior", "count": 1} in data["category_by_seniority"]

    def test_category_trends(self, scope):
        """Monthly counts per category over the last six months, by category then month."""
        assert compute_categories(scope, NOW, NAMES)["category_trends"] == [
            {"category": "digital-technology", "month": "2025-05", "count": 1},
            {"category": "digital-technology", "month": "2025-06", "count": 2},
            {"category": "health-medical", "month": "2025-05", "count": 1},
        ]

    def test_agencies(self, scope):
        data = compute_agencies(scope, NOW, NAMES)

        assert data["total_agencies"] == 2
        who = next(a for a in data["agencies"] if a["agency"] == "WHO")
        assert who["market_share"] == 50.0
        assert who["categories_count"] == 2
        assert who["avg_window"] == 20.0
        assert data["agency_by_category"] == [
            {"agency": "UNDP", "category": "digital-technology", "count": 2},
            {"agency": "WHO", "category": "digital-technology", "count": 1},
            {"agency": "WHO", "category": "health-medical", "count": 1},
        ]

    def test_agency_trends(self, scope):
        assert compute_agencies(scope, NOW, NAMES)["agency_trends"] == [
            {"agency": "UNDP", "month": "2025-06", "count": 2},
            {"agency": "WHO", "month": "2025-05", "count": 2},
        ]

    def test_temporal(self, scope):
        data = compute_temporal(scope, NOW, NAMES)
        monthly = data["monthly_postings"]

        assert len(monthly) == 12
        assert monthly[0]["month"] == "2024-07"
        assert monthly[-1] == {"month": "2025-06", "total": 2, "agencies": 1, "categories": 1}
        assert monthly[-2] == {"month": "2025-05", "total": 2, "agencies": 1, "categories": 2}
        assert data["month_over_month_growth"] == 0.0
        assert data["seasonal_patterns"][4] == {"month": 5, "name": "May", "count": 2}

    def test_time_series(self, scope):
        """Category and agency series over twelve months, by month first."""
        data = compute_temporal(scope, NOW, NAMES)

        assert data["category_time_series"] == [
            {"month": "2025-05", "category": "digital-technology", "count": 1},
            {"month": "2025-05", "category": "health-medical", "count": 1},
            {"month": "2025-06", "category": "digital-technology", "count": 2},
        ]
        assert data["agency_time_series"] == [
            {"month": "2025-05", "agency": "WHO", "count": 2},
            {"month": "2025-06", "agency": "UNDP", "count": 2},
        ]

    def test_trend_windows(self, scope_for):
        """Trends cover six months and time series twelve; later months are excluded."""
        scope = scope_for([
            _row(1, posting_date=datetime(2024, 12, 20)),
            _row(2, posting_date=datetime(2025, 1, 1)),
            _row(3, posting_date=datetime(2025, 7, 2)),
        ])

        trends = compute_categories(scope, NOW, NAMES)["category_trends"]
        series = compute_temporal(scope, NOW, NAMES)["category_time_series"]

        assert [t["month"] for t in trends] == ["2025-01"]
        assert [s["month"] for s in series] == ["2024-12", "2025-01"]

    def test_trailing_months(self):
        assert trailing_months(NOW, 3) == [(2025, 4), (2025, 5), (2025, 6)]
        assert trailing_months(datetime(2025, 1, 31), 2) == [(2024, 12), (2025, 1)]

    def test_temporal_growth(self, scope_for):
        scope = scope_for([
            _row(1, posting_date=datetime(2025, 5, 3)),
            _row(2, posting_date=datetime(2025, 5, 4)),
            _row(3, posting_date=datetime(2025, 6, 5)),
        ])

        assert compute_temporal(scope, NOW, NAMES)["month_over_month_growth"] == -50.0

    def test_temporal_ignores_old_and_undated_postings(self, scope_for):
        scope = scope_for([_row(1, posting_date=datetime(2023, 1, 1)), _row(2, posting_date=None)])
        data = compute_temporal(scope, NOW, NAMES)

        assert sum(m["total"] for m in data["monthly_postings"]) == 0
        assert data["seasonal_patterns"][0]["count"] == 1
        assert data["category_time_series"] == []

    def test_workforce(self, scope):
        data = compute_workforce(scope, NOW, NAMES)

        assert data["seniority_distribution"][0] == {"seniority_level": "Mid-Level", "count": 3}
        assert data["location_type_distribution"] == [{"location_type": "HQ", "count": 4}]
        assert data["country_distribution"][0] == {"country": "Kenya", "count": 3}
        assert data["grade_distribution"] == []
        assert data["experience"]["hs_min_exp"] == {"avg": 7.0, "min": 7, "max": 7, "count": 1}
        assert data["experience"]["master_min_exp"] == {"avg": 0.0, "min": 0, "max": 0, "count": 0}

    def test_skills(self, scope):
        data = compute_skills(scope, NOW, NAMES)

        assert data["top_skills"][0] == {"skill": "Python", "count": 2}
        assert data["total_unique_skills"] == 3
        assert data["avg_skills_per_posting"] == 1.0
        health = next(c for c in data["top_skills_by_category"] if c["category"] == "health-medical")
        assert health["skills"] == [{"skill": "Public Health", "count": 1}]

    def test_competitive(self, scope):
        data = compute_competitive(scope, NOW, NAMES)

        assert data["market_concentration"]["hhi"] == 0.5
        dominance = {d["category"]: d for d in data["category_dominance"]}
        assert dominance["digital-technology"]["leading_agency"] == "UNDP"
        assert dominance["digital-technology"]["total_in_category"] == 3
        assert dominance["digital-technology"]["leading_share"] == pytest.approx(66.67)
        assert dominance["health-medical"]["leading_agency"] == "WHO"
        who = next(a for a in data["agency_positioning"] if a["agency"] == "WHO")
        assert who["geographic_reach"] == 2
        assert who["category_diversity"] == 2

    def test_blank_agency_not_counted(self, scope_for):
        """Empty agency strings are left out of agency counts."""
        scope = scope_for([_row(1), _row(2, short_agency="")])

        assert compute_overview(scope, NOW, NAMES)["total_agencies"] == 1
        assert compute_agencies(scope, NOW, NAMES)["total_agencies"] == 1

    def test_empty_cache(self, scope_for):
        """Every aggregate handles an empty cache."""
        scope = scope_for([])
        for name, compute in AGGREGATES.items():
            assert isinstance(compute(scope, NOW, NAMES), dict), name


def _seed_cache(store, now):
    store.insert_batch([
        {"id": 1, "title": "Data Scientist", "short_agency": "UNDP", "primary_category": "digital-technology",
         "status": "active", "posting_date": now - timedelta(days=3), "processed_at": now},
        {"id": 2, "title": "Medical Officer", "short_agency": "WHO", "primary_category": "health-medical",
         "status": "active", "posting_date": now - timedelta(days=40), "processed_at": now},
        {"id": 3, "title": "Epidemiologist", "short_agency": "WHO", "primary_category": "health-medical",
         "status": "expired", "posting_date": now - timedelta(days=60), "processed_at": now},
    ])


class TestPrecomputer:
    """Caching every aggregate after a sync."""

    def test_precompute_all(self, cache_store, now):
        _seed_cache(cache_store, now)

        results = AnalyticsPrecomputer(cache_store, ttl_hours=24).precompute_all(now)

        assert results == {cache_key(name): True for name in AGGREGATES}
        entry = cache_store.get_analytics("dashboard:agencies")
        assert entry["data"]["total_agencies"] == 2
        assert entry["expires_at"] == now + timedelta(hours=24)

    def test_failing_aggregate_is_isolated(self, cache_store, now):
        """One failing aggregate does not stop the others."""
        _seed_cache(cache_store, now)

        def broken(scope, now, names):
            raise ZeroDivisionError("boom")

        aggregates = {"overview": compute_overview, "broken": broken, "skills": compute_skills}
        results = AnalyticsPrecomputer(cache_store, aggregates=aggregates).precompute_all(now)

        assert results == {"dashboard:overview": True, "dashboard:broken": False, "dashboard:skills": True}
        assert cache_store.get_analytics("dashboard:broken") is None
        assert cache_store.get_analytics("dashboard:skills") is not None

    def test_recompute_overwrites(self, cache_store, now):
        _seed_cache(cache_store, now)
        precomputer = AnalyticsPrecomputer(cache_store)
        precomputer.precompute_all(now)

        cache_store.clear_postings()
        precomputer.precompute_all(now + timedelta(hours=1))

        entry = cache_store.get_analytics("dashboard:overview")
        assert entry["data"]["total_postings"] == 0
        assert entry["created_at"] == now + timedelta(hours=1)


class TestReader:
    """Fresh cache reads with live fallback."""

    def test_missing_entry(self, cache_store, now):
        reader = AnalyticsReader(cache_store, clock=lambda: now)
        assert reader.get_cached_analytics("dashboard:overview") is None

    def test_fresh_entry_served_from_cache(self, cache_store, now):
        _seed_cache(cache_store, now)
        AnalyticsPrecomputer(cache_store).precompute_all(now)
        cache_store.clear_postings()

        reader = AnalyticsReader(cache_store, clock=lambda: now + timedelta(hours=1))
        result = reader.get("overview")

        assert result.cached is True
        assert result.is_fresh is True
        assert result.data["total_postings"] == 3

    def test_expired_entry_reported_stale(self, cache_store, now):
        _seed_cache(cache_store, now)
        AnalyticsPrecomputer(cache_store).precompute_all(now)

        reader = AnalyticsReader(cache_store, clock=lambda: now + timedelta(hours=25))
        cached = reader.get_cached_analytics("dashboard:overview")

        assert cached.is_fresh is False
        assert cached.data["total_postings"] == 3

    def test_expired_entry_computed_live(self, cache_store, now):
        """Stale entries are bypassed in favour of a live computation."""
        _seed_cache(cache_store, now)
        AnalyticsPrecomputer(cache_store).precompute_all(now)
        cache_store.clear_postings()

        reader = AnalyticsReader(cache_store, clock=lambda: now + timedelta(hours=25))
        result = reader.get("overview")

        assert result.cached is False
        assert result.data["total_postings"] == 0

    def test_miss_computed_live(self, cache_store, now):
        _seed_cache(cache_store, now)

        result = AnalyticsReader(cache_store, clock=lambda: now).get("categories")

        assert result.cached is False
        assert result.data["total_categories"] == 2

    def test_agency_filter_always_live(self, cache_store, now):
        _seed_cache(cache_store, now)
        AnalyticsPrecomputer(cache_store).precompute_all(now)

        result = AnalyticsReader(cache_store, clock=lambda: now).get("overview", agency="WHO")

        assert result.cached is False
        assert result.data["total_postings"] == 2
        assert result.data["total_agencies"] == 1

    def test_unknown_aggregate(self, cache_store, now):
        reader = AnalyticsReader(cache_store, clock=lambda: now)
        with pytest.raises(KeyError):
            reader.get("salaries")

    def test_to_dict(self, cache_store, now):
        _seed_cache(cache_store, now)
        AnalyticsPrecomputer(cache_store).precompute_all(now)

        data = AnalyticsReader(cache_store, clock=lambda: now).get("overview").to_dict()

        assert data["created_at"] == now.isoformat()
        assert data["cached"] is True
