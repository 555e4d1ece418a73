from __future__ import annotations

import json
from typing import Any, Dict, Optional

from prefect import flow, get_run_logger
from prefect.runtime import flow_run  # type: ignore

from dealflow.places.ingest import PlacesIngestor
from dealflow.places.job_input import load_search_list, parse_job_input


@flow(name="places-ingest", persist_result=False)
def places_ingest(job_input: Optional[str] = None) -> Dict[str, Any]:
    """
    Prefect flow wrapper for Places ingestion.

    `job_input` is the JSON task descriptor; when omitted it is read from env
    JOB_INPUT. A missing/invalid descriptor raises ConfigurationError before any
    job row, query or provider call is made.
    """
    logger = get_run_logger()

    job = parse_job_input(job_input)
    searches = load_search_list(job.search_list)
    logger.info(f"Places ingest started: job={job.job_id} searches={len(searches)}")

    counters = PlacesIngestor(job).run(searches)

    run_id = getattr(flow_run, "id", None)

    # quick scan line
    logger.info(
        f"[places] queries={counters.queries_executed} cached={counters.queries_skipped_cached} "
        f"new={counters.leads_found} dup={counters.duplicates_skipped} errors={counters.errors}"
    )
    summary = {
        "event": "places_ingest_run_complete",
        "run_id": str(run_id) if run_id else None,
        "job_id": job.job_id,
        "campaign_id": job.campaign_id,
        "campaign_run_id": job.campaign_run_id,
        **counters.as_dict(),
    }
    logger.info(json.dumps(summary, sort_keys=True))
    return summary


if __name__ == "__main__":
    places_ingest()
