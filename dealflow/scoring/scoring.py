"""
Scoring pass: facts summary + market context -> ScoringVerdict.

The verdict is validated strictly; any violation leaves the lead unscored
(MalformedResponse) rather than persisting a guess.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from dealflow import config
from dealflow.brain_gateway import BrainGateway
from dealflow.errors import ProviderError

from .models import (
    EXCLUDED_OWNERSHIP,
    INSUFFICIENT_EVIDENCE,
    OWNERSHIP_TYPES,
    ExtractionResult,
    MalformedResponse,
    Parsed,
    ProviderFailure,
    ScoringVerdict,
    StageResult,
)
from .parse import load_json_object
from .prompts import SCORING_PROMPT, SCORING_SYSTEM

logger = logging.getLogger(__name__)


class VerdictError(ValueError):
    pass


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" + ("" if n == 1 else "s")


def build_facts_summary(facts: ExtractionResult) -> str:
    lines = []

    firsts = '", "'.join(facts.first_name_only_contacts)
    if facts.owner_names:
        line = f"Owner: {', '.join(facts.owner_names)} (full name)."
        if facts.first_name_only_contacts:
            line += f' Also "{firsts}" (first name only).'
        lines.append(line)
    elif facts.first_name_only_contacts:
        lines.append(f'Owner: Unknown. First-name-only contacts: "{firsts}".')
    else:
        lines.append("Owner: Not identified.")

    if facts.team_members_named > 0:
        line = f"Team: {_plural(facts.team_members_named, 'named member')}"
        if facts.team_member_names:
            line += f" ({', '.join(facts.team_member_names)})"
        lines.append(line + ".")
    else:
        lines.append("Team: No named team members.")

    if facts.years_in_business is not None:
        line = f"Years: {facts.years_in_business} years in business"
        if facts.founded_year:
            line += f" (founded {facts.founded_year})"
        lines.append(line + ".")
    elif facts.founded_year is not None:
        lines.append(f"Founded: {facts.founded_year}.")
    else:
        lines.append("Years: Not stated.")

    if facts.services:
        lines.append(f"Services: {', '.join(facts.services)} ({_plural(len(facts.services), 'line')}).")
    else:
        lines.append("Services: None listed.")

    if facts.has_commercial_clients:
        names = f" — {', '.join(facts.commercial_client_names)}" if facts.commercial_client_names else ""
        lines.append(f"Clients: Commercial{names}.")
    else:
        lines.append("Clients: Residential only, no commercial mentions.")

    lines.append(f"Certs: {', '.join(facts.certifications)}." if facts.certifications else "Certs: None.")
    lines.append(f"Locations: {facts.location_count or 1}.")
    lines.append(f"Pricing: {', '.join(facts.pricing_signals)}." if facts.pricing_signals else "Pricing: No signals.")

    website = f"Website: {facts.website_quality}."
    if facts.red_flags:
        website += f" Red flags: {'; '.join(facts.red_flags)}."
    lines.append(website)

    if facts.copyright_year is not None:
        lines.append(f"Copyright year: {facts.copyright_year}.")

    if facts.testimonial_count > 0:
        lines.append(f"Testimonials: {facts.testimonial_count} on site.")
    else:
        lines.append("Testimonials: None on site.")

    if facts.recurring_revenue_signals:
        lines.append(f"Recurring revenue: {', '.join(facts.recurring_revenue_signals)}.")
    else:
        lines.append("Recurring revenue: None.")

    return "\n".join(lines)


def build_scoring_input(lead_data: Mapping[str, Any], facts_summary: str, market_context: str) -> str:
    content = SCORING_PROMPT
    if market_context:
        content += f"\n\n{market_context}\n\n"
    else:
        content += "\n\n"
    content += "## Extracted Facts\n\n" + facts_summary
    content += "\n\n## Lead Data\n\n" + json.dumps(dict(lead_data), indent=2, default=str)
    return content


def _score(payload: Mapping[str, Any], key: str, *aliases: str) -> int:
    for k in (key,) + aliases:
        if k in payload:
            v = payload[k]
            break
    else:
        raise VerdictError(f"{key} missing")
    if isinstance(v, bool) or not isinstance(v, int):
        raise VerdictError(f"{key} must be an integer, got {v!r}")
    if v != INSUFFICIENT_EVIDENCE and not 1 <= v <= 10:
        raise VerdictError(f"{key} out of range: {v}")
    return v


def _opt_text(v: Any, key: str) -> Optional[str]:
    if v is None:
        return None
    if not isinstance(v, str):
        raise VerdictError(f"{key} must be a string or null")
    v = v.strip()
    return None if not v or v.lower() == "null" else v


def validate_verdict(payload: Mapping[str, Any]) -> ScoringVerdict:
    """
    Scores are integers in 1..10 or exactly -1; is_excluded is a real boolean;
    ownership_type is from the fixed vocabulary; rationale is non-empty.
    Ownership in EXCLUDED_OWNERSHIP excludes the lead whatever the model said.
    """
    is_excluded = payload.get("is_excluded")
    if not isinstance(is_excluded, bool):
        raise VerdictError(f"is_excluded must be boolean, got {is_excluded!r}")

    ownership = payload.get("ownership_type")
    if ownership not in OWNERSHIP_TYPES:
        raise VerdictError(f"ownership_type not allowed: {ownership!r}")

    rationale = payload.get("rationale")
    if not isinstance(rationale, str) or not rationale.strip():
        raise VerdictError("rationale is empty")

    exclusion_reason = _opt_text(payload.get("exclusion_reason"), "exclusion_reason")
    if ownership in EXCLUDED_OWNERSHIP and not is_excluded:
        logger.info("forcing exclusion for ownership_type=%s", ownership)
        is_excluded = True
        exclusion_reason = exclusion_reason or ownership

    return ScoringVerdict(
        controlling_owner=_opt_text(payload.get("controlling_owner"), "controlling_owner"),
        ownership_type=ownership,
        is_excluded=is_excluded,
        exclusion_reason=exclusion_reason,
        business_quality_score=_score(payload, "business_quality_score"),
        exit_readiness_score=_score(payload, "exit_readiness_score", "sell_likelihood_score"),
        rationale=rationale.strip(),
    )


def score_lead(
    gateway: BrainGateway,
    lead_data: Mapping[str, Any],
    facts: ExtractionResult,
    market_context: str,
    *,
    lead_id: Optional[int] = None,
    job_id: Optional[str] = None,
) -> StageResult:
    content = build_scoring_input(lead_data, build_facts_summary(facts), market_context)
    try:
        raw = gateway.complete_json(
            content,
            SCORING_SYSTEM,
            model=config.scoring_model(),
            context_type="lead_scoring",
            lead_id=lead_id,
            job_id=job_id,
        )
    except ProviderError as e:
        return ProviderFailure(error=str(e), throttled=e.is_throttle)

    try:
        verdict = validate_verdict(load_json_object(raw))
    except ValueError as e:
        logger.warning("scoring response rejected lead_id=%s: %s", lead_id, e)
        return MalformedResponse(reason=str(e), raw=raw[:2000])

    # evidence comes from the extraction pass's verbatim quotes, not the scorer
    verdict.supporting_evidence = [{"url": q.url, "snippet": q.text} for q in facts.notable_quotes]
    return Parsed(verdict)
