from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class SearchSpec:
    """One entry of a campaign search list."""
    text_query: str
    included_type: Optional[str] = None


@dataclass
class JobInput:
    """Task descriptor delivered at task start."""
    job_id: str
    search_list: str               # local path or http(s) URL
    campaign_id: Optional[str] = None
    campaign_run_id: Optional[str] = None
    skip_cached_searches: bool = False
    max_results_per_search: int = 60


@dataclass
class PlaceRecord:
    """
    Canonical place shape used internally by ingestion.

    This is the unified representation BEFORE it is written into the `leads` table.
    """
    place_id: str
    name: str
    normalized_name: str

    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    phone: Optional[str] = None
    international_phone: Optional[str] = None
    website: Optional[str] = None
    google_maps_uri: Optional[str] = None

    rating: Optional[float] = None
    review_count: Optional[int] = None
    price_level: Optional[str] = None
    business_type: Optional[str] = None     # primaryTypeDisplayName
    primary_type: Optional[str] = None
    types: List[str] = field(default_factory=list)
    business_status: Optional[str] = None
    opening_hours: Optional[Dict[str, Any]] = None
    editorial_summary: Optional[str] = None
    review_summary: Optional[str] = None

    @property
    def is_permanently_closed(self) -> bool:
        return (self.business_status or "").upper() == "CLOSED_PERMANENTLY"


@dataclass
class PlacesPage:
    places: List[Dict[str, Any]]
    next_page_token: Optional[str] = None


@dataclass
class RunCounters:
    queries_executed: int = 0
    leads_found: int = 0
    duplicates_skipped: int = 0
    errors: int = 0
    queries_skipped_cached: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "queries_executed": self.queries_executed,
            "leads_found": self.leads_found,
            "duplicates_skipped": self.duplicates_skipped,
            "errors": self.errors,
            "queries_skipped_cached": self.queries_skipped_cached,
        }


@dataclass
class QueryOutcome:
    """Per-query result, recorded on the search_queries row."""
    results_count: int = 0
    new_leads_count: int = 0
    duplicates: int = 0
    errors: int = 0
    pages_fetched: int = 0
    skipped_cached: bool = False
    provider_error: Optional[str] = None
