from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class FetchedPage:
    """One already-fetched page handed to extraction."""
    url: str
    html: str = ""
    text: str = ""
    depth: int = 0
    status_code: int = 200
    title: Optional[str] = None
    parent_url: Optional[str] = None


@dataclass
class SourcedValue:
    """A scalar or contact value plus the page URL it came from."""
    value: str
    source_url: str


@dataclass
class SocialProfile:
    platform: str          # linkedin | facebook | instagram | twitter
    url: str
    source_url: str


@dataclass
class TeamMember:
    name: str
    title: Optional[str]
    is_executive: bool
    source_url: str


@dataclass
class AcquisitionSignal:
    signal_type: str       # acquired_by | part_of | merged_with | subsidiary_of | new_ownership
    text: str
    mentioned_date: Optional[str]
    source_url: str


@dataclass
class Snippet:
    category: str
    text: str
    source_url: str


@dataclass
class ScalarFact:
    """First-wins scalar (founded year, headcount) with the matched phrase."""
    value: int
    evidence: str
    source_url: str


@dataclass
class ExtractedData:
    """
    Per-lead extraction aggregate. Every collection item carries its source URL;
    storage resolves URLs to scraped_pages ids.
    """
    emails: List[SourcedValue] = field(default_factory=list)
    phones: List[SourcedValue] = field(default_factory=list)
    listing_phone_confirmed: bool = False
    social: Dict[str, SocialProfile] = field(default_factory=dict)
    team_members: List[TeamMember] = field(default_factory=list)
    first_name_contacts: List[SourcedValue] = field(default_factory=list)
    acquisition_signals: List[AcquisitionSignal] = field(default_factory=list)
    snippets: List[Snippet] = field(default_factory=list)

    founded_year: Optional[ScalarFact] = None
    headcount: Optional[ScalarFact] = None
    years_in_business: Optional[int] = None
    acquisition_summary: Optional[str] = None
    contact_page_url: Optional[str] = None

    @property
    def has_acquisition_signal(self) -> bool:
        return bool(self.acquisition_signals)

    @property
    def team_member_names(self) -> List[str]:
        return [m.name for m in self.team_members]
