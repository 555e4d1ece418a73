from __future__ import annotations

import json
import os
import uuid
from typing import Any, Dict, List, Optional

from prefect import flow, get_run_logger
from prefect.runtime import flow_run  # type: ignore

from dealflow.scoring.batch import LeadScorer
from dealflow.scoring.store import ScoringStore

BATCH_SIZE_DEFAULT = int(os.getenv("SCORE_BATCH_SIZE", "50"))


@flow(name="score-leads", persist_result=False)
def score_leads(
    limit: int = BATCH_SIZE_DEFAULT,
    lead_ids: Optional[List[int]] = None,
    rescore: bool = False,
) -> Dict[str, Any]:
    """
    Two-pass LLM scoring for unscored leads (or `lead_ids`). Leads that fail
    either pass stay unscored and are picked up by the next run.
    """
    logger = get_run_logger()
    run_id = getattr(flow_run, "id", None)
    job_id = f"score-{run_id or uuid.uuid4().hex[:12]}"

    store = ScoringStore()
    ids = store.leads_to_score(limit=limit, lead_ids=lead_ids, rescore=rescore)
    logger.info(f"Scoring started: job={job_id} leads={len(ids)} rescore={rescore}")

    counters = LeadScorer(job_id, store=store, rescore=rescore).score_batch(ids)

    # quick scan line
    logger.info(
        f"[score] scored={counters.scored} excluded={counters.excluded} "
        f"skipped={counters.skipped} failed={counters.failed}"
    )
    summary = {"event": "score_run_complete", "job_id": job_id, **counters.as_dict()}
    logger.info(json.dumps(summary, sort_keys=True))
    return summary


if __name__ == "__main__":
    score_leads()
