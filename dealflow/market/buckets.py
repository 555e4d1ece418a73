from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from dealflow import config


def rc_column(pct: float) -> str:
    """Materialized-view column for a review-count cut point: 25 -> rc_p25, 99.9 -> rc_p999."""
    if pct == int(pct):
        return f"rc_p{int(pct):02d}"
    return "rc_p" + f"{pct:g}".replace(".", "")


RC_COLUMNS = tuple(rc_column(p) for p in config.RC_PERCENTILES)


@dataclass
class TypeStats:
    """One row of market_stats_by_type."""
    business_type: str
    lead_count: int
    rating_mean: Optional[float]
    rating_median: Optional[float]
    cut_points: Sequence[float]  # aligned with config.RC_PERCENTILES

    def cut(self, pct: float) -> float:
        return self.cut_points[config.RC_PERCENTILES.index(pct)]


def _pct_label(pct: float) -> str:
    return f"{pct:g}th"


def percentile_bucket(value: float, cut_points: Sequence[float]) -> str:
    """
    Highest review-count bucket `value` clears, walking the cut points from the
    top down.
    """
    pcts = config.RC_PERCENTILES
    for i in range(len(pcts) - 1, -1, -1):
        cut = cut_points[i]
        if cut is None or value < cut:
            continue
        pct = pcts[i]
        if pct >= 99.9:
            return "99.9th+ percentile"
        if pct >= 99:
            return "99th–99.9th percentile"
        nxt = pcts[i + 1] if i < len(pcts) - 1 else 100
        return f"{_pct_label(pct)}–{_pct_label(nxt)} percentile"
    return "below minimum"


def _round(x: float) -> int:
    return int(math.floor(x + 0.5))


def build_market_context(
    business_type: Optional[str],
    stats: Optional[TypeStats],
    review_count: Optional[int],
    rating: Optional[float],
) -> str:
    """Prompt paragraph placing one lead inside its trade's review distribution."""
    if not business_type or stats is None:
        return ""

    section = f'Among {stats.lead_count} "{business_type}" businesses in our database:\n'
    section += (
        "- Review count distribution: "
        f"p25={_round(stats.cut(25))}, median={_round(stats.cut(50))}, p75={_round(stats.cut(75))}, "
        f"p90={_round(stats.cut(90))}, p99={_round(stats.cut(99))}\n"
    )
    if review_count is not None:
        section += (
            f"- This lead's {review_count} reviews = "
            f"{percentile_bucket(review_count, stats.cut_points)} for this trade\n"
        )
    if stats.rating_median is not None:
        section += f"- Rating: median {stats.rating_median:.1f}"
        if rating is not None:
            side = "above" if rating >= stats.rating_median else "below"
            section += f" — this lead's {rating:.1f} = {side} median"

    return "## Market Context\n\n" + section
