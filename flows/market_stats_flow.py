from __future__ import annotations

import json
import time
from typing import Any, Dict

from prefect import flow, get_run_logger, task

from dealflow.market.refresh import refresh_lead_ranks, refresh_market_stats


@task
def refresh_views() -> None:
    refresh_market_stats()


@task
def rank_leads() -> int:
    return refresh_lead_ranks()


@flow(name="market-stats", persist_result=False)
def market_stats() -> Dict[str, Any]:
    """Refresh the per-cohort review-count views, then recompute lead percentiles."""
    logger = get_run_logger()
    started = time.monotonic()

    refresh_views()
    ranked = rank_leads()

    elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.info(f"[market] views refreshed, leads ranked={ranked} in {elapsed_ms}ms")
    summary = {"event": "market_stats_complete", "leads_ranked": ranked, "duration_ms": elapsed_ms}
    logger.info(json.dumps(summary, sort_keys=True))
    return summary


if __name__ == "__main__":
    market_stats()
