"""
Per-lead scoring pipeline: website document -> extraction pass -> heuristic
merge -> market context -> scoring pass -> verdict write.

A malformed response or provider failure in either pass leaves that lead
unscored and counted as failed; the batch moves on. FatalPersistenceError
propagates and fails the job.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Callable, Dict, Iterable, Optional

from dealflow.brain_gateway import BrainGateway
from dealflow.errors import PersistenceError
from dealflow.market.buckets import TypeStats, build_market_context
from dealflow.market.refresh import load_type_stats

from .extraction import extract_facts, merge_heuristics
from .models import MalformedResponse, Parsed, ScoringVerdict, StageResult
from .scoring import score_lead
from .store import LEAD_FIELDS, ScoringStore

logger = logging.getLogger(__name__)

PROMPT_LEAD_FIELDS = LEAD_FIELDS + ("emails", "phones", "social", "contact_page_url")


@dataclass
class ScoreCounters:
    scored: int = 0
    skipped: int = 0
    failed: int = 0
    excluded: int = 0

    def as_dict(self):
        return asdict(self)


def _describe(result: StageResult) -> str:
    if isinstance(result, MalformedResponse):
        return f"malformed: {result.reason}"
    return f"provider: {result.error}" + (" (throttled)" if result.throttled else "")


class LeadScorer:
    def __init__(
        self,
        job_id: str,
        *,
        store: Optional[ScoringStore] = None,
        gateway: Optional[BrainGateway] = None,
        rescore: bool = False,
        stats_loader: Callable[[str], Optional[TypeStats]] = load_type_stats,
    ):
        self.job_id = job_id
        self.store = store or ScoringStore()
        self.gateway = gateway or BrainGateway()
        self.rescore = rescore
        self._stats_loader = stats_loader
        self._stats_cache: Dict[str, Optional[TypeStats]] = {}
        self.counters = ScoreCounters()

    def score_batch(self, lead_ids: Iterable[int]) -> ScoreCounters:
        self.store.start_job(self.job_id, job_type="scoring")
        try:
            for lead_id in lead_ids:
                self.score_one(lead_id)
        except Exception as e:
            logger.exception("scoring run failed")
            self.store.finish_job(
                self.job_id,
                status="failed",
                error_message=f"{type(e).__name__}: {str(e)[:500]}",
                meta=self.counters.as_dict(),
            )
            raise

        self.store.finish_job(self.job_id, status="completed", meta=self.counters.as_dict())
        logger.info(json.dumps({"event": "scoring_batch_done", "job_id": self.job_id, **self.counters.as_dict()}, sort_keys=True))
        return self.counters

    def _market_context(self, lead: dict) -> str:
        business_type = lead.get("business_type")
        if not business_type:
            return ""
        if business_type not in self._stats_cache:
            self._stats_cache[business_type] = self._stats_loader(business_type)
        return build_market_context(
            business_type, self._stats_cache[business_type], lead.get("review_count"), lead.get("rating")
        )

    def _fail(self, lead_id: int, stage: str, result: StageResult) -> None:
        self.counters.failed += 1
        logger.warning(
            json.dumps(
                {"event": "lead_score_failed", "lead_id": lead_id, "stage": stage, "reason": _describe(result)},
                sort_keys=True,
            )
        )

    def score_one(self, lead_id: int) -> Optional[ScoringVerdict]:
        lead = self.store.load_lead(lead_id)
        if lead is None:
            logger.warning("lead %s not found; skipping", lead_id)
            self.counters.skipped += 1
            return None
        if lead.get("scored_at") is not None and not self.rescore:
            self.counters.skipped += 1
            return None

        lead_data = {k: lead.get(k) for k in PROMPT_LEAD_FIELDS}

        extraction = extract_facts(
            self.gateway, lead_data, self.store.site_document(lead_id), lead_id=lead_id, job_id=self.job_id
        )
        if not isinstance(extraction, Parsed):
            self._fail(lead_id, "extraction", extraction)
            return None
        facts = merge_heuristics(extraction.value, self.store.heuristic_facts(lead_id))

        result = score_lead(
            self.gateway, lead_data, facts, self._market_context(lead), lead_id=lead_id, job_id=self.job_id
        )
        if not isinstance(result, Parsed):
            self._fail(lead_id, "scoring", result)
            return None

        verdict: ScoringVerdict = result.value
        try:
            self.store.save_verdict(lead_id, verdict)
        except PersistenceError as e:
            self.counters.failed += 1
            logger.error("verdict persist failed lead_id=%s: %s", lead_id, e)
            return None

        self.counters.scored += 1
        if verdict.is_excluded:
            self.counters.excluded += 1
        logger.info(
            json.dumps(
                {
                    "event": "lead_scored",
                    "lead_id": lead_id,
                    "ownership_type": verdict.ownership_type,
                    "is_excluded": verdict.is_excluded,
                    "business_quality_score": verdict.business_quality_score,
                    "exit_readiness_score": verdict.exit_readiness_score,
                },
                sort_keys=True,
            )
        )
        return verdict
