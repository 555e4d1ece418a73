"""
Core Places ingestion orchestration.

Prefect-free on purpose; Prefect wrapper lives in flows/places_ingest_flow.py.

Ordering:
- strictly sequential across queries and across pages within one query
  (each page request depends on the previous continuation token)
- a search_queries row is written before any lead attributed to it

Failure semantics:
- ProviderError ends the current query's pagination loop; the batch continues
- PersistenceError on one row is logged and counted
- FatalPersistenceError propagates and fails the job
"""

from __future__ import annotations

import json
import logging
import time
from typing import Callable, Iterable, List, Optional, Set

from dealflow import config
from dealflow.errors import FatalPersistenceError, PersistenceError, ProviderError
from dealflow.google.places import PlacesClient, parse_place

from .models import JobInput, PlaceRecord, QueryOutcome, RunCounters, SearchSpec
from .store import PlacesStore

logger = logging.getLogger(__name__)


def _log_event(event: str, **payload) -> None:
    logger.info(json.dumps({"event": event, **payload}, sort_keys=True, default=str))


class PlacesIngestor:
    """
    One instance per ingestion run: owns the run's rate limiter (through its
    client) and the in-memory set of place ids already seen in this run.
    """

    def __init__(
        self,
        job: JobInput,
        *,
        store: Optional[PlacesStore] = None,
        client: Optional[PlacesClient] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.job = job
        self.store = store or PlacesStore()
        self.client = client or PlacesClient(sleep=sleep)
        self._sleep = sleep
        self._seen: Set[str] = set()
        self.counters = RunCounters()

    # -----------------------------
    # Run
    # -----------------------------
    def run(self, searches: Iterable[SearchSpec]) -> RunCounters:
        """
        Execute every search in order. Job / campaign-run status is written only
        at start and at the terminal point.
        """
        job = self.job
        searches = list(searches)

        self.store.start_job(job.job_id, job_type="places")
        if job.campaign_run_id:
            self.store.start_campaign_run(job.campaign_run_id)

        _log_event(
            "places_run_started",
            job_id=job.job_id,
            campaign_id=job.campaign_id,
            campaign_run_id=job.campaign_run_id,
            searches=len(searches),
            skip_cached=job.skip_cached_searches,
            max_results=job.max_results_per_search,
        )

        try:
            for spec in searches:
                outcome = self.ingest_query(spec)
                self._apply(outcome)
                if job.campaign_run_id:
                    self.store.update_run_counters(job.campaign_run_id, self.counters)
        except Exception as e:
            msg = f"{type(e).__name__}: {str(e)[:500]}"
            logger.exception("places run failed")
            self._mark_terminal("failed", error_message=msg)
            raise

        self._mark_terminal("completed")
        _log_event("places_run_complete", job_id=job.job_id, **self.counters.as_dict())
        return self.counters

    def _apply(self, outcome: QueryOutcome) -> None:
        if outcome.skipped_cached:
            self.counters.queries_skipped_cached += 1
            return
        self.counters.queries_executed += 1
        self.counters.leads_found += outcome.new_leads_count
        self.counters.duplicates_skipped += outcome.duplicates
        self.counters.errors += outcome.errors

    def _mark_terminal(self, status: str, *, error_message: Optional[str] = None) -> None:
        job = self.job
        try:
            if job.campaign_run_id:
                self.store.finish_campaign_run(
                    job.campaign_run_id,
                    status=status,
                    counters=self.counters,
                    error_message=error_message,
                )
            self.store.finish_job(
                job.job_id,
                status=status,
                error_message=error_message,
                meta=self.counters.as_dict(),
            )
        except (PersistenceError, FatalPersistenceError):
            if status == "completed":
                raise
            # store already failing; the original error is what propagates
            logger.exception("could not record terminal status=%s for job %s", status, job.job_id)

    # -----------------------------
    # One query
    # -----------------------------
    def ingest_query(self, spec: SearchSpec) -> QueryOutcome:
        job = self.job
        outcome = QueryOutcome()

        if job.skip_cached_searches and self.store.recent_query_exists(
            spec.text_query, spec.included_type, window_days=config.CACHE_WINDOW_DAYS
        ):
            outcome.skipped_cached = True
            _log_event("places_query_cached", text_query=spec.text_query, included_type=spec.included_type)
            return outcome

        query_id = self.store.create_search_query(
            campaign_id=job.campaign_id,
            campaign_run_id=job.campaign_run_id,
            text_query=spec.text_query,
            included_type=spec.included_type,
        )

        for rec in self._paginate(spec, outcome):
            outcome.results_count += 1
            self._persist(rec, query_id, outcome)

        self.store.record_query_result(
            query_id,
            results_count=outcome.results_count,
            new_leads_count=outcome.new_leads_count,
        )

        _log_event(
            "places_query_done",
            search_query_id=query_id,
            text_query=spec.text_query,
            included_type=spec.included_type,
            pages=outcome.pages_fetched,
            results=outcome.results_count,
            new_leads=outcome.new_leads_count,
            duplicates=outcome.duplicates,
            errors=outcome.errors,
            provider_error=outcome.provider_error,
        )
        return outcome

    def _paginate(self, spec: SearchSpec, outcome: QueryOutcome) -> List[PlaceRecord]:
        """
        Follow continuation tokens until the cap is reached, the provider stops
        returning a token, or 3 consecutive pages come back empty.
        """
        cap = max(1, min(self.job.max_results_per_search, config.MAX_RESULTS_CAP))
        accepted: List[PlaceRecord] = []
        page_token: Optional[str] = None
        empty_streak = 0

        while len(accepted) < cap:
            try:
                page = self.client.search_text_page(
                    spec.text_query,
                    included_type=spec.included_type,
                    page_token=page_token,
                    page_size=min(config.PAGE_SIZE, cap - len(accepted)),
                )
            except ProviderError as e:
                outcome.errors += 1
                outcome.provider_error = str(e)[:500]
                logger.warning("places query %r aborted: %s", spec.text_query, e)
                break

            outcome.pages_fetched += 1
            empty_streak = 0 if page.places else empty_streak + 1

            for raw in page.places:
                if len(accepted) >= cap:
                    break
                rec = parse_place(raw)
                if rec is None or rec.is_permanently_closed:
                    continue
                if rec.place_id in self._seen:
                    continue
                self._seen.add(rec.place_id)
                accepted.append(rec)

            if empty_streak >= config.MAX_CONSECUTIVE_EMPTY_PAGES:
                break
            if not page.next_page_token or len(accepted) >= cap:
                break

            page_token = page.next_page_token
            # tokens are not valid until a short delay after issue
            self._sleep(config.PAGE_TOKEN_WAIT)

        return accepted

    def _persist(self, rec: PlaceRecord, query_id: int, outcome: QueryOutcome) -> None:
        job = self.job
        try:
            lead_id = self.store.insert_lead(
                rec,
                campaign_id=job.campaign_id,
                campaign_run_id=job.campaign_run_id,
                search_query_id=query_id,
            )
        except PersistenceError as e:
            outcome.errors += 1
            logger.error("lead upsert failed place_id=%s: %s", rec.place_id, e)
            return

        if lead_id is None:
            outcome.duplicates += 1
            return

        outcome.new_leads_count += 1

        try:
            self.store.link_franchise(
                lead_id=lead_id,
                place_id=rec.place_id,
                normalized_name=rec.normalized_name,
                display_name=rec.name,
            )
        except PersistenceError as e:
            logger.warning("franchise link failed lead_id=%s: %s", lead_id, e)

