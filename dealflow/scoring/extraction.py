"""
Extraction pass: website text -> ExtractionResult.

The model is asked to record facts only. A response is a MalformedResponse
unless it is a JSON object carrying extraction keys of the right shape; list
entries and numeric strings are then coerced into the fixed schema.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from dataclasses import fields
from typing import Any, Mapping, Optional

from dealflow import config
from dealflow.brain_gateway import BrainGateway
from dealflow.errors import ProviderError

from .models import (
    WEBSITE_QUALITY,
    ExtractionResult,
    HeuristicFacts,
    MalformedResponse,
    NotableQuote,
    Parsed,
    ProviderFailure,
    StageResult,
    empty_extraction,
)
from .parse import count, load_json_object, opt_int, str_list
from .prompts import EXTRACTION_PROMPT, EXTRACTION_SYSTEM

logger = logging.getLogger(__name__)

MAX_NOTABLE_QUOTES = 5

_LIST_FIELDS = (
    "owner_names",
    "first_name_only_contacts",
    "team_member_names",
    "services",
    "commercial_client_names",
    "certifications",
    "pricing_signals",
    "red_flags",
    "recurring_revenue_signals",
    "notable_quotes",
)
_INT_FIELDS = (
    "team_members_named",
    "years_in_business",
    "founded_year",
    "location_count",
    "copyright_year",
    "testimonial_count",
)
_FIELDS = frozenset(f.name for f in fields(ExtractionResult))


class ExtractionError(ValueError):
    pass


def check_extraction(data: Mapping[str, Any]) -> None:
    """
    Reject payloads that are not an extraction: none of the schema keys, a
    list field that is not a list, a count that is not a number, or a
    website_quality outside the vocabulary. Missing keys are fine.
    """
    if not _FIELDS.intersection(data):
        raise ExtractionError(f"no extraction fields in response (keys: {sorted(data)[:10]})")

    for key in _LIST_FIELDS:
        if data.get(key) is not None and not isinstance(data[key], list):
            raise ExtractionError(f"{key} must be a list, got {type(data[key]).__name__}")

    for key in _INT_FIELDS:
        if data.get(key) is not None and opt_int(data[key]) is None:
            raise ExtractionError(f"{key} must be an integer, got {data[key]!r}")

    commercial = data.get("has_commercial_clients")
    if commercial is not None and not isinstance(commercial, bool):
        raise ExtractionError(f"has_commercial_clients must be boolean, got {commercial!r}")

    quality = data.get("website_quality")
    if quality is not None and str(quality).strip().lower() not in WEBSITE_QUALITY:
        raise ExtractionError(f"website_quality not allowed: {quality!r}")


def coerce_extraction(data: Mapping[str, Any]) -> ExtractionResult:
    check_extraction(data)
    quality = str(data.get("website_quality") or "none").strip().lower()

    quotes = []
    for q in data.get("notable_quotes") or []:
        if isinstance(q, dict) and str(q.get("text") or "").strip():
            quotes.append(NotableQuote(url=str(q.get("url") or ""), text=str(q["text"]).strip()))

    return ExtractionResult(
        owner_names=str_list(data.get("owner_names")),
        first_name_only_contacts=str_list(data.get("first_name_only_contacts")),
        team_members_named=count(data.get("team_members_named")),
        team_member_names=str_list(data.get("team_member_names")),
        years_in_business=opt_int(data.get("years_in_business")),
        founded_year=opt_int(data.get("founded_year")),
        services=str_list(data.get("services")),
        has_commercial_clients=data.get("has_commercial_clients") is True,
        commercial_client_names=str_list(data.get("commercial_client_names")),
        certifications=str_list(data.get("certifications")),
        location_count=count(data.get("location_count")),
        pricing_signals=str_list(data.get("pricing_signals")),
        copyright_year=opt_int(data.get("copyright_year")),
        website_quality=quality,
        red_flags=str_list(data.get("red_flags")),
        testimonial_count=count(data.get("testimonial_count")),
        recurring_revenue_signals=str_list(data.get("recurring_revenue_signals")),
        notable_quotes=quotes[:MAX_NOTABLE_QUOTES],
    )


def build_extraction_input(lead: Mapping[str, Any], site_document: str) -> str:
    basic = {k: lead.get(k) for k in ("name", "business_type", "city", "state")}
    return (
        EXTRACTION_PROMPT
        + "\n\n## Lead Basic Info\n\n"
        + json.dumps(basic, indent=2)
        + "\n\n## Raw Website Content\n\n"
        + site_document
    )


def extract_facts(
    gateway: BrainGateway,
    lead: Mapping[str, Any],
    site_document: str,
    *,
    lead_id: Optional[int] = None,
    job_id: Optional[str] = None,
) -> StageResult:
    """No website content means no model call: the fixed empty extraction."""
    if not (site_document or "").strip():
        return Parsed(empty_extraction())

    try:
        raw = gateway.complete_json(
            build_extraction_input(lead, site_document),
            EXTRACTION_SYSTEM,
            model=config.extraction_model(),
            context_type="lead_extraction",
            lead_id=lead_id,
            job_id=job_id,
        )
    except ProviderError as e:
        return ProviderFailure(error=str(e), throttled=e.is_throttle)

    try:
        facts = coerce_extraction(load_json_object(raw))
    except ValueError as e:
        logger.warning("extraction response rejected lead_id=%s: %s", lead_id, e)
        return MalformedResponse(reason=str(e), raw=raw[:2000])

    return Parsed(facts)


def merge_heuristics(
    facts: ExtractionResult,
    heuristics: Optional[HeuristicFacts],
    *,
    now_year: Optional[int] = None,
) -> ExtractionResult:
    """
    Fold deterministic crawl facts into the model's facts: the founded year
    fills a gap, names are unioned (case-insensitive), counts never shrink.
    """
    if heuristics is None:
        return facts

    current = now_year if now_year is not None else dt.date.today().year

    if facts.founded_year is None and heuristics.founded_year is not None:
        facts.founded_year = heuristics.founded_year
    if facts.years_in_business is None and facts.founded_year is not None:
        facts.years_in_business = current - facts.founded_year

    def _union(base, extra):
        seen = {x.lower() for x in base}
        for x in extra:
            if x.lower() not in seen:
                seen.add(x.lower())
                base.append(x)
        return base

    _union(facts.first_name_only_contacts, heuristics.first_name_only_contacts)
    _union(facts.team_member_names, heuristics.team_member_names)
    facts.team_members_named = max(facts.team_members_named, len(facts.team_member_names))
    return facts
