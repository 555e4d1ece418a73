"""
Per-lead merge of page-level extraction.

Pages are walked in priority order (about/contact/team/staff/leadership
first). schema.org data from every page is merged before any heuristic pass,
so structured values win the first-wins scalars (founded year, headcount) and
take the first slots of the capped collections.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Dict, Iterable, List, Optional

from dealflow import config

from .contact import extract_emails, extract_phones, find_contact_page_url, is_fake_phone, normalize_phone
from .history import acquisition_summary, extract_acquisition_signals, extract_founded_year
from .html import html_to_text
from .models import ExtractedData, FetchedPage, ScalarFact, SocialProfile, SourcedValue, TeamMember
from .snippets import extract_snippets
from .social import extract_social_links, from_urls
from .structured import extract_schema_org
from .team import dedupe_team_members, extract_first_name_contacts, extract_headcount, extract_team_members

logger = logging.getLogger(__name__)


def _priority_key(page: FetchedPage):
    url = page.url.lower()
    return tuple(0 if kw in url else 1 for kw in config.PRIORITY_PATH_KEYWORDS)


def order_pages(pages: Iterable[FetchedPage]) -> List[FetchedPage]:
    """Stable sort; among equally-ranked pages crawl order is kept."""
    return sorted(pages, key=_priority_key)


def page_text(page: FetchedPage) -> str:
    """The crawler's text, or text rendered from the html. Never writes back."""
    if page.text:
        return page.text
    return html_to_text(page.html) if page.html else ""


class _Merger:
    def __init__(self, listing_phone: Optional[str]):
        self.data = ExtractedData()
        self.listing_phone = normalize_phone(listing_phone) if listing_phone else None
        self._emails = set()
        self._phones = set()
        self._first_names = set()

    def email(self, value: str, url: str) -> None:
        if value in self._emails or len(self.data.emails) >= config.MAX_EMAILS:
            return
        self._emails.add(value)
        self.data.emails.append(SourcedValue(value=value, source_url=url))

    def phone(self, raw: str, url: str) -> None:
        d = self.data
        if d.listing_phone_confirmed:
            return
        p = normalize_phone(raw)
        if len(p) != 10 or is_fake_phone(p):
            return
        if self.listing_phone and p == self.listing_phone:
            # the listing number is on the site: it becomes the only phone
            d.phones = [SourcedValue(value=p, source_url=url)]
            self._phones = {p}
            d.listing_phone_confirmed = True
            return
        if p in self._phones or len(d.phones) >= config.MAX_PHONES:
            return
        self._phones.add(p)
        d.phones.append(SourcedValue(value=p, source_url=url))

    def social(self, found: dict, url: str) -> None:
        for platform, profile_url in found.items():
            if platform not in self.data.social:
                self.data.social[platform] = SocialProfile(platform=platform, url=profile_url, source_url=url)

    def founded(self, year: int, evidence: str, url: str) -> None:
        if self.data.founded_year is None:
            self.data.founded_year = ScalarFact(value=year, evidence=evidence, source_url=url)

    def headcount(self, n: int, evidence: str, url: str) -> None:
        if self.data.headcount is None:
            self.data.headcount = ScalarFact(value=n, evidence=evidence, source_url=url)

    def first_name(self, name: str, url: str) -> None:
        if name.lower() in self._first_names:
            return
        self._first_names.add(name.lower())
        self.data.first_name_contacts.append(SourcedValue(value=name, source_url=url))


def aggregate_pages(
    pages: Iterable[FetchedPage],
    *,
    listing_phone: Optional[str] = None,
    now_year: Optional[int] = None,
) -> ExtractedData:
    ordered = order_pages(pages)
    m = _Merger(listing_phone)
    current_year = now_year if now_year is not None else dt.date.today().year
    team: List[TeamMember] = []

    # pass 1: structured data
    for page in ordered:
        schema = extract_schema_org(page.html)
        if schema is None:
            continue
        if schema.email:
            m.email(schema.email, page.url)
        if schema.telephone:
            m.phone(schema.telephone, page.url)
        if schema.same_as:
            m.social(from_urls(schema.same_as), page.url)
        if schema.founding_year and 1800 <= schema.founding_year <= current_year:
            m.founded(schema.founding_year, f"foundingDate {schema.founding_year}", page.url)
        if schema.number_of_employees and 2 <= schema.number_of_employees <= 10_000:
            m.headcount(schema.number_of_employees, f"numberOfEmployees {schema.number_of_employees}", page.url)
        for name in schema.founders:
            team.append(TeamMember(name=name, title="Founder", is_executive=True, source_url=page.url))

    # pass 2: heuristics
    seen_snippets = set()
    per_category: Dict[str, int] = {}
    for page in ordered:
        text = page_text(page)
        url = page.url

        for e in extract_emails(text, page.html):
            m.email(e, url)
        for p in extract_phones(text, page.html):
            m.phone(p, url)
        m.social(extract_social_links(page.html), url)

        team.extend(extract_team_members(text, url))
        for name in extract_first_name_contacts(text):
            m.first_name(name, url)

        founded = extract_founded_year(text, now_year=current_year)
        if founded:
            m.founded(founded[0], founded[1], url)
        hc = extract_headcount(text)
        if hc:
            m.headcount(hc[0], hc[1], url)

        m.data.acquisition_signals.extend(extract_acquisition_signals(text, url))

        for s in extract_snippets(page.html, url, text):
            key = s.text.lower()
            if key in seen_snippets or per_category.get(s.category, 0) >= config.MAX_SNIPPETS_PER_CATEGORY:
                continue
            seen_snippets.add(key)
            per_category[s.category] = per_category.get(s.category, 0) + 1
            m.data.snippets.append(s)

    data = m.data
    data.team_members = dedupe_team_members(team)
    if data.founded_year is not None:
        data.years_in_business = current_year - data.founded_year.value
    data.acquisition_summary = acquisition_summary(data.acquisition_signals)
    data.contact_page_url = find_contact_page_url([p.url for p in ordered])

    logger.info(
        "extracted pages=%d emails=%d phones=%d social=%d team=%d snippets=%d founded=%s",
        len(ordered),
        len(data.emails),
        len(data.phones),
        len(data.social),
        len(data.team_members),
        len(data.snippets),
        data.founded_year.value if data.founded_year else None,
    )
    return data


def build_site_document(pages: Iterable[FetchedPage], *, max_chars: int = config.MAX_SITE_DOCUMENT_CHARS) -> str:
    """
    Priority-ordered plain-text rendering of a crawl, one 'Source: <url>'
    header per page, truncated to `max_chars`.
    """
    parts: List[str] = []
    total = 0
    for page in order_pages(pages):
        text = page_text(page).strip()
        if not text:
            continue
        chunk = f"Source: {page.url}\n\n{text}\n\n"
        parts.append(chunk)
        total += len(chunk)
        if total >= max_chars:
            break
    return "".join(parts)[:max_chars].rstrip()
