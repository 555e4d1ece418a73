"""
Entropy-weighted cohort percentiles, in-process.

refresh.py runs the same computation as one SQL batch over the leads table;
these functions are the reference for that SQL and work over plain lists.

Per cohort (business type, and separately city+state) and per score:
- weight = cohort size * Shannon entropy (base 10) of the score histogram;
  a constant-valued cohort has entropy 0 and carries no weight
- percentile = PERCENT_RANK * 100, only for cohorts with >= COHORT_FLOOR members
- composite = weighted mean of the non-null percentiles, None when their
  weights sum to 0
"""

from __future__ import annotations

import math
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from dealflow import config

Histogram = Mapping[Hashable, int]


@dataclass
class ScoredLead:
    id: int
    business_type: Optional[str]
    city: Optional[str]
    state: Optional[str]
    business_quality_score: Optional[int]
    exit_readiness_score: Optional[int]
    is_excluded: bool = False

    @property
    def qualifies(self) -> bool:
        q, e = self.business_quality_score, self.exit_readiness_score
        return q is not None and e is not None and q != -1 and e != -1 and not self.is_excluded


@dataclass
class LeadRanks:
    quality_percentile_by_type: Optional[float] = None
    quality_percentile_by_city: Optional[float] = None
    exit_percentile_by_type: Optional[float] = None
    exit_percentile_by_city: Optional[float] = None
    composite_score: Optional[float] = None


def _histogram(values: Union[Histogram, Iterable[Hashable]]) -> Histogram:
    if isinstance(values, Mapping):
        return values
    return Counter(values)


def shannon_entropy(values: Union[Histogram, Iterable[Hashable]]) -> float:
    """Base-10 entropy of a value histogram; 0 for zero or one distinct values."""
    hist = {k: n for k, n in _histogram(values).items() if n > 0}
    if len(hist) <= 1:
        return 0.0
    total = float(sum(hist.values()))
    return -sum((n / total) * math.log(n / total) for n in hist.values()) / math.log(10)


def cohort_weight(values: Union[Histogram, Iterable[Hashable]]) -> float:
    hist = _histogram(values)
    return sum(hist.values()) * shannon_entropy(hist)


def percent_rank(value: float, population: Sequence[float]) -> float:
    """
    PERCENT_RANK() * 100: (rank - 1) / (n - 1) where rank counts strictly
    smaller members plus one; ties share the lowest rank.
    """
    n = len(population)
    if n <= 1:
        return 0.0
    below = sum(1 for v in population if v < value)
    return below / (n - 1) * 100.0


def composite_score(parts: Iterable[Tuple[Optional[float], float]]) -> Optional[float]:
    """Weighted mean over (percentile, weight) pairs, skipping null percentiles."""
    num = 0.0
    den = 0.0
    for pct, weight in parts:
        if pct is None:
            continue
        num += pct * weight
        den += weight
    if den == 0:
        return None
    return num / den


def _cohort_ranks(
    members: List[ScoredLead], attr: str
) -> Tuple[Dict[int, Optional[float]], float]:
    scores = [getattr(m, attr) for m in members]
    weight = cohort_weight(scores)
    if len(members) < config.COHORT_FLOOR:
        return {m.id: None for m in members}, weight
    return {m.id: percent_rank(getattr(m, attr), scores) for m in members}, weight


def compute_cohort_ranks(leads: Iterable[ScoredLead]) -> Dict[int, LeadRanks]:
    """Ranks for every qualifying lead, keyed by lead id."""
    scored = [l for l in leads if l.qualifies]

    by_type: Dict[str, List[ScoredLead]] = defaultdict(list)
    by_city: Dict[Tuple[str, Optional[str]], List[ScoredLead]] = defaultdict(list)
    for lead in scored:
        if lead.business_type is not None:
            by_type[lead.business_type].append(lead)
        if lead.city is not None:
            by_city[(lead.city, lead.state)].append(lead)

    # (percentile, weight) per lead per dimension
    dims: Dict[int, Dict[str, Tuple[Optional[float], float]]] = defaultdict(dict)

    for cohorts, suffix in ((by_type, "type"), (by_city, "city")):
        for members in cohorts.values():
            for attr, prefix in (("business_quality_score", "quality"), ("exit_readiness_score", "exit")):
                ranks, weight = _cohort_ranks(members, attr)
                for lead_id, pct in ranks.items():
                    dims[lead_id][f"{prefix}_percentile_by_{suffix}"] = (pct, weight)

    out: Dict[int, LeadRanks] = {}
    for lead in scored:
        d = dims.get(lead.id, {})
        ranks = LeadRanks(**{k: v[0] for k, v in d.items()})
        ranks.composite_score = composite_score(d.values())
        out[lead.id] = ranks
    return out
