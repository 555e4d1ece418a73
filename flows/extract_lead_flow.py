from __future__ import annotations

import json
import os
import uuid
from typing import Any, Dict, List, Optional

from prefect import flow, get_run_logger
from prefect.runtime import flow_run  # type: ignore

from dealflow.scrape.runner import LeadExtractor
from dealflow.scrape.storage import ScrapeStore

BATCH_SIZE_DEFAULT = int(os.getenv("EXTRACT_BATCH_SIZE", "25"))


def _job_id() -> str:
    run_id = getattr(flow_run, "id", None)
    return f"extract-{run_id or uuid.uuid4().hex[:12]}"


def _run(limit: int, lead_ids: Optional[List[int]], force: bool) -> Dict[str, Any]:
    logger = get_run_logger()
    job_id = _job_id()

    store = ScrapeStore()
    targets = store.leads_to_scrape(limit=limit, lead_ids=lead_ids, force=force)
    logger.info(f"Extract started: job={job_id} leads={len(targets)} force={force}")

    c = LeadExtractor(job_id, store=store).run(targets)

    # quick scan line
    logger.info(
        f"[extract] leads={len(targets)} crawled={c.crawled} failed={c.failed} pages={c.pages} "
        f"founded={c.with_founded_year} acq={c.with_acquisition_signal}"
    )
    summary = {"event": "extract_run_complete", "job_id": job_id, **c.as_dict()}
    logger.info(json.dumps(summary, sort_keys=True))
    return summary


@flow(name="extract-lead", persist_result=False)
def extract_lead(lead_id: int, force: bool = True) -> Dict[str, Any]:
    """Crawl one lead's website and persist the extracted data (re-crawls by default)."""
    return _run(1, [lead_id], force)


@flow(name="extract-leads", persist_result=False)
def extract_leads(
    limit: int = BATCH_SIZE_DEFAULT,
    lead_ids: Optional[List[int]] = None,
    force: bool = False,
) -> Dict[str, Any]:
    """Crawl every lead with a website that has not been crawled yet."""
    return _run(limit, lead_ids, force)


if __name__ == "__main__":
    extract_leads()
