from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

OWNERSHIP_TYPES = (
    "founder-owned",
    "family-owned",
    "partner-owned",
    "PE-backed",
    "corporate subsidiary",
    "franchise",
    "unknown",
)

# ownership that always puts a lead outside the ranked pool
EXCLUDED_OWNERSHIP = ("PE-backed", "corporate subsidiary", "franchise")

WEBSITE_QUALITY = ("none", "template/basic", "professional", "content-rich")

INSUFFICIENT_EVIDENCE = -1


@dataclass
class NotableQuote:
    url: str
    text: str


@dataclass
class ExtractionResult:
    """Facts read off a lead's website by the extraction pass. No judgement."""
    owner_names: List[str] = field(default_factory=list)
    first_name_only_contacts: List[str] = field(default_factory=list)
    team_members_named: int = 0
    team_member_names: List[str] = field(default_factory=list)
    years_in_business: Optional[int] = None
    founded_year: Optional[int] = None
    services: List[str] = field(default_factory=list)
    has_commercial_clients: bool = False
    commercial_client_names: List[str] = field(default_factory=list)
    certifications: List[str] = field(default_factory=list)
    location_count: int = 0
    pricing_signals: List[str] = field(default_factory=list)
    copyright_year: Optional[int] = None
    website_quality: str = "none"
    red_flags: List[str] = field(default_factory=list)
    testimonial_count: int = 0
    recurring_revenue_signals: List[str] = field(default_factory=list)
    notable_quotes: List[NotableQuote] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def empty_extraction() -> ExtractionResult:
    """Facts for a lead with no website content."""
    return ExtractionResult(website_quality="none", red_flags=["No website data available"])


@dataclass
class HeuristicFacts:
    """Deterministic facts from crawl & extraction, merged ahead of scoring."""
    founded_year: Optional[int] = None
    first_name_only_contacts: List[str] = field(default_factory=list)
    team_member_names: List[str] = field(default_factory=list)


@dataclass
class ScoringVerdict:
    controlling_owner: Optional[str]
    ownership_type: str
    is_excluded: bool
    exclusion_reason: Optional[str]
    business_quality_score: int
    exit_readiness_score: int
    rationale: str
    supporting_evidence: List[Dict[str, str]] = field(default_factory=list)


# -----------------------------
# Per-stage outcome
# -----------------------------
@dataclass(frozen=True)
class Parsed:
    value: Any


@dataclass(frozen=True)
class MalformedResponse:
    reason: str
    raw: str = ""


@dataclass(frozen=True)
class ProviderFailure:
    error: str
    throttled: bool = False


StageResult = Union[Parsed, MalformedResponse, ProviderFailure]
