from __future__ import annotations

import itertools
from typing import Dict, List, Optional

import pytest

from dealflow.places.models import PlacesPage
from dealflow.places.store import FRANCHISE_CREATE, franchise_action


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakePlacesClient:
    """Serves canned pages; records every (query, page_token) request."""

    def __init__(self, pages: List[PlacesPage]):
        self.pages = list(pages)
        self.calls: List[tuple] = []

    def search_text_page(self, text_query, *, included_type=None, page_token=None, page_size=20):
        self.calls.append((text_query, page_token))
        if not self.pages:
            return PlacesPage(places=[])
        return self.pages.pop(0)


class FakePlacesStore:
    """In-memory stand-in for PlacesStore that keeps the same uniqueness rules."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.leads: Dict[str, dict] = {}
        self.franchises: Dict[str, int] = {}
        self.lead_franchise: Dict[int, int] = {}
        self.queries: List[dict] = []
        self.jobs: Dict[str, dict] = {}
        self.runs: Dict[str, dict] = {}
        self.cached_queries: set = set()

    def start_job(self, job_id, *, job_type):
        self.jobs[job_id] = {"status": "running", "job_type": job_type}

    def finish_job(self, job_id, *, status, error_message=None, meta=None):
        self.jobs[job_id].update(status=status, error_message=error_message, meta=meta or {})

    def start_campaign_run(self, run_id):
        self.runs[run_id] = {"status": "running"}

    def update_run_counters(self, run_id, counters):
        self.runs[run_id]["counters"] = counters.as_dict()

    def finish_campaign_run(self, run_id, *, status, counters, error_message=None):
        self.runs[run_id].update(status=status, counters=counters.as_dict(), error_message=error_message)

    def recent_query_exists(self, text_query, included_type, *, window_days):
        return (text_query, included_type) in self.cached_queries

    def create_search_query(self, *, campaign_id, campaign_run_id, text_query, included_type):
        qid = len(self.queries) + 1
        self.queries.append({"id": qid, "text_query": text_query, "included_type": included_type})
        self.cached_queries.add((text_query, included_type))
        return qid

    def record_query_result(self, query_id, *, results_count, new_leads_count):
        self.queries[query_id - 1].update(results_count=results_count, new_leads_count=new_leads_count)

    def insert_lead(self, rec, *, campaign_id, campaign_run_id, search_query_id) -> Optional[int]:
        if rec.place_id in self.leads:
            return None
        lead_id = next(self._ids)
        self.leads[rec.place_id] = {
            "id": lead_id,
            "name": rec.name,
            "normalized_name": rec.normalized_name,
            "search_query_id": search_query_id,
        }
        return lead_id

    def link_franchise(self, *, lead_id, place_id, normalized_name, display_name):
        shared = any(
            l["normalized_name"] == normalized_name and pid != place_id for pid, l in self.leads.items()
        )
        action = franchise_action(self.franchises.get(normalized_name), shared)
        if action is None:
            return None
        if action == FRANCHISE_CREATE:
            fid = self.franchises[normalized_name] = len(self.franchises) + 1
            for lead in self.leads.values():
                if lead["normalized_name"] == normalized_name and lead["id"] not in self.lead_franchise:
                    self.lead_franchise[lead["id"]] = fid
        else:
            fid = self.franchises[normalized_name]
            self.lead_franchise[lead_id] = fid
        return fid


def make_place(i: int, *, name: Optional[str] = None, status: str = "OPERATIONAL") -> dict:
    return {
        "id": f"place-{i}",
        "displayName": {"text": name or f"Plumber {i}"},
        "businessStatus": status,
        "addressComponents": [
            {"longText": "Denver", "shortText": "Denver", "types": ["locality"]},
            {"longText": "Colorado", "shortText": "CO", "types": ["administrative_area_level_1"]},
        ],
        "userRatingCount": 10 + i,
        "rating": 4.5,
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def places_store():
    return FakePlacesStore()
