"""
Crawl + extract + persist for a batch of leads. Prefect wrapper lives in
flows/extract_lead_flow.py.

A crawl that yields no pages, or raises, is recorded as a failed scrape run
and the batch moves on. FatalPersistenceError propagates and fails the job.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, Iterable, Optional

import requests

from dealflow.errors import PersistenceError

from .aggregate import aggregate_pages
from .fetch import SiteCrawler
from .storage import ScrapeStore, ScrapeTarget

logger = logging.getLogger(__name__)


@dataclass
class ExtractCounters:
    crawled: int = 0
    failed: int = 0
    pages: int = 0
    with_founded_year: int = 0
    with_acquisition_signal: int = 0

    def as_dict(self):
        return asdict(self)


class LeadExtractor:
    def __init__(
        self,
        job_id: str,
        *,
        store: Optional[ScrapeStore] = None,
        crawler: Optional[SiteCrawler] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.job_id = job_id
        self.store = store or ScrapeStore()
        self.crawler = crawler or SiteCrawler()
        self._clock = clock
        self.counters = ExtractCounters()

    def run(self, targets: Iterable[ScrapeTarget]) -> ExtractCounters:
        self.store.start_job(self.job_id, job_type="extract")
        try:
            for target in targets:
                self.extract_one(target)
        except Exception as e:
            logger.exception("extract run failed")
            self.store.finish_job(
                self.job_id,
                status="failed",
                error_message=f"{type(e).__name__}: {str(e)[:500]}",
                meta=self.counters.as_dict(),
            )
            raise

        self.store.finish_job(self.job_id, status="completed", meta=self.counters.as_dict())
        return self.counters

    def extract_one(self, target: ScrapeTarget) -> Optional[int]:
        started = self._clock()
        try:
            pages = self.crawler.crawl(target.website)
        except requests.RequestException as e:
            pages, error = [], f"{type(e).__name__}: {e}"
        else:
            error = "no pages fetched"
        duration_ms = int((self._clock() - started) * 1000)

        if not pages:
            self.counters.failed += 1
            try:
                self.store.record_failure(
                    target.lead_id, target.website, error, job_id=self.job_id, duration_ms=duration_ms
                )
            except PersistenceError as e:
                logger.error("could not record failed crawl lead_id=%s: %s", target.lead_id, e)
            return None

        extracted = aggregate_pages(pages, listing_phone=target.phone)
        try:
            run_id = self.store.persist(
                target.lead_id, target.website, pages, extracted, job_id=self.job_id, duration_ms=duration_ms
            )
        except PersistenceError as e:
            self.counters.failed += 1
            logger.error("scrape persist failed lead_id=%s: %s", target.lead_id, e)
            return None

        self.counters.crawled += 1
        self.counters.pages += len(pages)
        if extracted.founded_year:
            self.counters.with_founded_year += 1
        if extracted.has_acquisition_signal:
            self.counters.with_acquisition_signal += 1

        logger.info(
            json.dumps(
                {
                    "event": "lead_extracted",
                    "lead_id": target.lead_id,
                    "scrape_run_id": run_id,
                    "pages": len(pages),
                    "emails": len(extracted.emails),
                    "phones": len(extracted.phones),
                    "listing_phone_confirmed": extracted.listing_phone_confirmed,
                    "team_members": len(extracted.team_members),
                    "founded_year": extracted.founded_year.value if extracted.founded_year else None,
                    "duration_ms": duration_ms,
                },
                sort_keys=True,
            )
        )
        return run_id
