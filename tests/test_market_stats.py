import math
import random
from contextlib import contextmanager
from types import SimpleNamespace

import pytest

from dealflow import config
from dealflow.market.buckets import TypeStats, build_market_context, percentile_bucket, rc_column
from dealflow.market.refresh import market_view_ddl, refresh_lead_ranks
from dealflow.market.stats import (
    ScoredLead,
    cohort_weight,
    composite_score,
    compute_cohort_ranks,
    percent_rank,
    shannon_entropy,
)


def _percentile_cont(values, p):
    """Postgres PERCENTILE_CONT: linear interpolation over sorted values."""
    xs = sorted(values)
    pos = p * (len(xs) - 1)
    lo = math.floor(pos)
    hi = min(lo + 1, len(xs) - 1)
    return xs[lo] + (xs[hi] - xs[lo]) * (pos - lo)


def _type_stats(values, *, rating_median=4.6):
    return TypeStats(
        business_type="HVAC",
        lead_count=len(values),
        rating_mean=rating_median,
        rating_median=rating_median,
        cut_points=[_percentile_cont(values, p / 100.0) for p in config.RC_PERCENTILES],
    )


# ---------------------------------------------------------------- primitives


def test_entropy_zero_for_single_value():
    assert shannon_entropy([5, 5, 5]) == 0.0
    assert cohort_weight([5, 5, 5]) == 0.0


def test_entropy_base_ten():
    assert shannon_entropy([1, 2]) == pytest.approx(math.log10(2))
    assert shannon_entropy({1: 1, 2: 1}) == pytest.approx(math.log10(2))
    assert cohort_weight([1, 2]) == pytest.approx(2 * math.log10(2))


def test_percent_rank_matches_sql_semantics():
    assert percent_rank(3, [1, 2, 3, 4, 5]) == 50.0
    assert percent_rank(2, [1, 2, 2, 3]) == pytest.approx(100.0 / 3)
    assert percent_rank(7, [7]) == 0.0


def test_composite_undefined_without_weight():
    assert composite_score([(None, 1.0), (50.0, 0.0)]) is None
    assert composite_score([(100.0, 1.0), (0.0, 3.0)]) == pytest.approx(25.0)


# ---------------------------------------------------------------- cohort ranks


def test_percentiles_monotonic_within_cohort():
    leads = [
        ScoredLead(i, "Plumber", f"City{i}", "CO", business_quality_score=q, exit_readiness_score=(i % 3) + 1)
        for i, q in enumerate([1, 3, 3, 5, 8, 9, 2])
    ]
    ranks = compute_cohort_ranks(leads)
    ordered = sorted(leads, key=lambda l: l.business_quality_score)
    pcts = [ranks[l.id].quality_percentile_by_type for l in ordered]
    assert pcts == sorted(pcts)
    assert pcts[0] == 0.0
    assert pcts[-1] == 100.0


def test_small_cohorts_get_no_percentiles():
    leads = [
        ScoredLead(i, "Roofer", f"Town{i}", "ID", business_quality_score=i + 1, exit_readiness_score=2)
        for i in range(config.COHORT_FLOOR - 1)
    ]
    ranks = compute_cohort_ranks(leads)
    for r in ranks.values():
        assert r.quality_percentile_by_type is None
        assert r.exit_percentile_by_type is None
        assert r.quality_percentile_by_city is None
        assert r.composite_score is None


def test_composite_within_bounds():
    rng = random.Random(7)
    leads = [
        ScoredLead(
            i,
            rng.choice(["HVAC", "Plumber", "Electrician"]),
            rng.choice(["Denver", "Boulder"]),
            "CO",
            business_quality_score=rng.randint(1, 10),
            exit_readiness_score=rng.randint(1, 10),
        )
        for i in range(120)
    ]
    ranks = compute_cohort_ranks(leads)
    composites = [r.composite_score for r in ranks.values() if r.composite_score is not None]
    assert composites
    assert all(0.0 <= c <= 100.0 for c in composites)


def test_zero_entropy_cohort_leaves_composite_undefined():
    leads = [
        ScoredLead(i, "Locksmith", f"Town{i}", "TX", business_quality_score=5, exit_readiness_score=5)
        for i in range(6)
    ]
    ranks = compute_cohort_ranks(leads)
    for r in ranks.values():
        assert r.quality_percentile_by_type == 0.0
        assert r.composite_score is None


def test_excluded_and_insufficient_leads_not_ranked():
    leads = [
        ScoredLead(1, "HVAC", "Denver", "CO", 5, 3, is_excluded=True),
        ScoredLead(2, "HVAC", "Denver", "CO", -1, 3),
        ScoredLead(3, "HVAC", "Denver", "CO", None, None),
        ScoredLead(4, "HVAC", "Denver", "CO", 4, 2),
    ]
    assert set(compute_cohort_ranks(leads)) == {4}


# ---------------------------------------------------------------- buckets / context


def test_bucket_for_92nd_percentile_lead():
    stats = _type_stats(list(range(1, 201)))
    assert percentile_bucket(185, stats.cut_points) == "90th–95th percentile"


def test_bucket_edges():
    stats = _type_stats(list(range(1, 201)))
    assert percentile_bucket(200, stats.cut_points) == "99.9th+ percentile"
    assert percentile_bucket(199, stats.cut_points) == "99th–99.9th percentile"
    assert percentile_bucket(0, stats.cut_points) == "below minimum"


def test_rc_column_names():
    assert rc_column(5) == "rc_p05"
    assert rc_column(50) == "rc_p50"
    assert rc_column(99.9) == "rc_p999"


def test_market_context_paragraph():
    stats = _type_stats(list(range(1, 201)))
    ctx = build_market_context("HVAC", stats, 185, 4.8)
    assert ctx.startswith('## Market Context\n\nAmong 200 "HVAC" businesses in our database:\n')
    assert "p25=51, median=101, p75=150, p90=180, p99=198" in ctx
    assert "This lead's 185 reviews = 90th–95th percentile for this trade" in ctx
    assert ctx.endswith("Rating: median 4.6 — this lead's 4.8 = above median")


def test_market_context_empty_without_stats():
    assert build_market_context("HVAC", None, 10, 4.0) == ""
    assert build_market_context(None, _type_stats([1, 2, 3]), 10, 4.0) == ""


def test_view_ddl_has_unique_index_per_view():
    stmts = market_view_ddl()
    for view in ("market_stats_by_type", "market_stats_by_state", "market_stats_by_city"):
        assert any(f"CREATE MATERIALIZED VIEW IF NOT EXISTS {view}" in s for s in stmts)
        assert any(f"CREATE UNIQUE INDEX IF NOT EXISTS ux_{view}" in s for s in stmts)


# ---------------------------------------------------------------- rank refresh SQL


class _RecordingConn:
    def __init__(self, statements):
        self.statements = statements

    def exec_driver_sql(self, sql):
        self.statements.append(" ".join(sql.split()))
        return SimpleNamespace(rowcount=3)


class _RecordingEngine:
    def __init__(self):
        self.statements = []

    @contextmanager
    def begin(self):
        yield _RecordingConn(self.statements)


def test_rank_refresh_statement_order():
    eng = _RecordingEngine()
    assert refresh_lead_ranks(eng) == 3

    stmts = eng.statements
    assert stmts[0].startswith("CREATE TEMP TABLE _scored")
    assert stmts[3].startswith("CREATE TEMP TABLE _type_weights")
    assert stmts[4].startswith("CREATE TEMP TABLE _city_weights")
    assert stmts[5].startswith("WITH ranked AS")
    assert stmts[6].startswith("UPDATE leads SET quality_percentile_by_type = NULL")
    assert len(stmts) == 7


def test_rank_refresh_qualifying_pool():
    eng = _RecordingEngine()
    refresh_lead_ranks(eng)
    scored = eng.statements[0]

    assert "business_quality_score <> -1" in scored
    assert "exit_readiness_score <> -1" in scored
    assert "is_excluded = false" in scored


def test_city_cohort_keyed_by_city_and_state():
    eng = _RecordingEngine()
    refresh_lead_ranks(eng)
    type_w, city_w, update = eng.statements[3], eng.statements[4], eng.statements[5]

    assert "WHERE business_type IS NOT NULL" in type_w
    assert "GROUP BY city, state" in city_w
    assert "WHERE city IS NOT NULL" in city_w
    assert "state IS NOT NULL" not in city_w
    assert "q.state IS NOT DISTINCT FROM cc.state" in city_w
    assert "PARTITION BY s.city, s.state ORDER BY s.business_quality_score" in update
    assert "cw.state IS NOT DISTINCT FROM s.state" in update


def test_cohort_floor_gates_every_percentile():
    eng = _RecordingEngine()
    refresh_lead_ranks(eng)
    update = eng.statements[5]

    assert update.count(f"tw.cnt >= {config.COHORT_FLOOR}") == 2
    assert update.count(f"cw.cnt >= {config.COHORT_FLOOR}") == 2
    assert "NULLIF(" in update
