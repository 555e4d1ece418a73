import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from dealflow.brain_gateway import BrainGateway
from dealflow.errors import ProviderError
from dealflow.market.buckets import TypeStats
from dealflow.scoring.batch import LeadScorer
from dealflow.scoring.extraction import extract_facts, merge_heuristics
from dealflow.scoring.models import (
    EXCLUDED_OWNERSHIP,
    ExtractionResult,
    HeuristicFacts,
    MalformedResponse,
    NotableQuote,
    Parsed,
    ProviderFailure,
    empty_extraction,
)
from dealflow.scoring.scoring import build_facts_summary, build_scoring_input, score_lead, validate_verdict


def _verdict(**overrides):
    payload = {
        "controlling_owner": "Jane Smith",
        "ownership_type": "founder-owned",
        "is_excluded": False,
        "exclusion_reason": None,
        "business_quality_score": 4,
        "exit_readiness_score": 2,
        "rationale": "Small residential shop with a basic site.",
    }
    payload.update(overrides)
    return payload


class FakeGateway:
    """Returns canned responses in order; a ProviderError entry is raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def complete_json(self, prompt, system, *, model, context_type=None, lead_id=None, job_id=None):
        self.calls.append({"prompt": prompt, "context_type": context_type, "lead_id": lead_id})
        r = self.responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r if isinstance(r, str) else json.dumps(r)


# ---------------------------------------------------------------- verdict validation


def test_valid_verdict_parses():
    v = validate_verdict(_verdict(exit_readiness_score=-1))
    assert v.business_quality_score == 4
    assert v.exit_readiness_score == -1
    assert v.controlling_owner == "Jane Smith"


@pytest.mark.parametrize(
    "overrides",
    [
        {"business_quality_score": 11},
        {"business_quality_score": 0},
        {"business_quality_score": -2},
        {"business_quality_score": 4.5},
        {"business_quality_score": "4"},
        {"business_quality_score": True},
        {"is_excluded": "false"},
        {"ownership_type": "owner-operated"},
        {"rationale": "   "},
    ],
)
def test_invalid_verdict_rejected(overrides):
    with pytest.raises(ValueError):
        validate_verdict(_verdict(**overrides))


def test_missing_score_rejected():
    payload = _verdict()
    del payload["exit_readiness_score"]
    with pytest.raises(ValueError):
        validate_verdict(payload)


@pytest.mark.parametrize("ownership", EXCLUDED_OWNERSHIP)
def test_excluding_ownership_forces_exclusion(ownership):
    v = validate_verdict(_verdict(ownership_type=ownership, is_excluded=False, business_quality_score=9))
    assert v.is_excluded is True
    assert v.exclusion_reason == ownership
    assert v.business_quality_score == 9


def test_forced_exclusion_keeps_model_reason():
    v = validate_verdict(
        _verdict(ownership_type="franchise", is_excluded=False, exclusion_reason="Ace Hardware franchisee")
    )
    assert v.is_excluded is True
    assert v.exclusion_reason == "Ace Hardware franchisee"


def test_owner_operated_verdict_not_excluded():
    v = validate_verdict(_verdict(ownership_type="family-owned"))
    assert v.is_excluded is False
    assert v.exclusion_reason is None


# ---------------------------------------------------------------- facts summary


def test_facts_summary_for_empty_site():
    summary = build_facts_summary(empty_extraction())
    assert summary.splitlines() == [
        "Owner: Not identified.",
        "Team: No named team members.",
        "Years: Not stated.",
        "Services: None listed.",
        "Clients: Residential only, no commercial mentions.",
        "Certs: None.",
        "Locations: 1.",
        "Pricing: No signals.",
        "Website: none. Red flags: No website data available.",
        "Testimonials: None on site.",
        "Recurring revenue: None.",
    ]


def test_facts_summary_with_facts():
    facts = ExtractionResult(
        owner_names=["Jane Smith"],
        first_name_only_contacts=["Mike"],
        team_members_named=2,
        team_member_names=["Jane Smith", "Bob Jones"],
        years_in_business=21,
        founded_year=2005,
        services=["drain cleaning"],
        has_commercial_clients=True,
        commercial_client_names=["City of Denver"],
        copyright_year=2019,
        website_quality="professional",
        testimonial_count=4,
    )
    lines = build_facts_summary(facts).splitlines()
    assert lines[0] == 'Owner: Jane Smith (full name). Also "Mike" (first name only).'
    assert lines[1] == "Team: 2 named members (Jane Smith, Bob Jones)."
    assert lines[2] == "Years: 21 years in business (founded 2005)."
    assert lines[3] == "Services: drain cleaning (1 line)."
    assert lines[4] == "Clients: Commercial — City of Denver."
    assert "Copyright year: 2019." in lines
    assert "Testimonials: 4 on site." in lines


def test_first_name_only_owner_line():
    facts = ExtractionResult(first_name_only_contacts=["Mike", "Raul"])
    assert build_facts_summary(facts).splitlines()[0] == 'Owner: Unknown. First-name-only contacts: "Mike", "Raul".'


def test_scoring_input_sections():
    content = build_scoring_input({"name": "Acme"}, "Owner: Not identified.", "## Market Context\n\nAmong 3")
    assert "\n\n## Market Context\n\nAmong 3\n\n## Extracted Facts\n\nOwner: Not identified." in content
    assert content.endswith('## Lead Data\n\n{\n  "name": "Acme"\n}')


# ---------------------------------------------------------------- passes


def test_no_site_content_skips_model_call():
    gw = FakeGateway()
    result = extract_facts(gw, {"name": "Acme"}, "   ")
    assert isinstance(result, Parsed)
    assert result.value.red_flags == ["No website data available"]
    assert gw.calls == []


def test_extraction_tolerates_prose_around_json():
    gw = FakeGateway('Here you go:\n{"owner_names": ["Jane Smith"], "team_members_named": "3", "website_quality": "Professional"}')
    result = extract_facts(gw, {"name": "Acme"}, "Source: https://a.com\n\nAbout us", lead_id=7)
    assert isinstance(result, Parsed)
    assert result.value.owner_names == ["Jane Smith"]
    assert result.value.team_members_named == 3
    assert result.value.website_quality == "professional"
    assert gw.calls[0]["context_type"] == "lead_extraction"
    assert "## Raw Website Content\n\nSource: https://a.com" in gw.calls[0]["prompt"]


def test_extraction_non_object_is_malformed():
    result = extract_facts(FakeGateway("[1, 2, 3]"), {}, "text")
    assert isinstance(result, MalformedResponse)


@pytest.mark.parametrize(
    "payload",
    [
        {"totally": "unrelated"},
        {},
        {"owner_names": "Jane Smith"},
        {"owner_names": [], "website_quality": "fancy"},
        {"owner_names": [], "team_members_named": "several"},
        {"owner_names": [], "has_commercial_clients": "yes"},
    ],
)
def test_extraction_off_schema_is_malformed(payload):
    result = extract_facts(FakeGateway(payload), {}, "Source: https://a.com\n\nAbout us")
    assert isinstance(result, MalformedResponse)


def test_extraction_provider_failure():
    err = ProviderError("RateLimitError: slow down", status_code=429, kind="llm")
    result = extract_facts(FakeGateway(err), {}, "text")
    assert isinstance(result, ProviderFailure)
    assert result.throttled is True


def test_heuristics_fill_gaps_without_shrinking():
    facts = ExtractionResult(team_members_named=5, team_member_names=["Jane Smith"])
    merged = merge_heuristics(
        facts,
        HeuristicFacts(founded_year=2005, first_name_only_contacts=["Mike"], team_member_names=["jane smith", "Bob Jones"]),
        now_year=2026,
    )
    assert merged.founded_year == 2005
    assert merged.years_in_business == 21
    assert merged.first_name_only_contacts == ["Mike"]
    assert merged.team_member_names == ["Jane Smith", "Bob Jones"]
    assert merged.team_members_named == 5


def test_score_attaches_quotes_as_evidence():
    facts = ExtractionResult(notable_quotes=[NotableQuote(url="https://a.com/about", text="Family owned since 1988")])
    result = score_lead(FakeGateway(_verdict()), {"name": "Acme"}, facts, "")
    assert isinstance(result, Parsed)
    assert result.value.supporting_evidence == [{"url": "https://a.com/about", "snippet": "Family owned since 1988"}]


def test_out_of_range_score_is_malformed():
    result = score_lead(FakeGateway(_verdict(business_quality_score=12)), {}, ExtractionResult(), "")
    assert isinstance(result, MalformedResponse)


# ---------------------------------------------------------------- batch


class FakeScoringStore:
    def __init__(self, leads):
        self.leads = leads
        self.saved = {}
        self.jobs = {}

    def start_job(self, job_id, *, job_type):
        self.jobs[job_id] = {"status": "running", "job_type": job_type}

    def finish_job(self, job_id, *, status, error_message=None, meta=None):
        self.jobs[job_id].update(status=status, meta=meta)

    def load_lead(self, lead_id):
        return self.leads.get(lead_id)

    def site_document(self, lead_id):
        return self.leads[lead_id].get("_document", "")

    def heuristic_facts(self, lead_id):
        return HeuristicFacts()

    def save_verdict(self, lead_id, verdict):
        self.saved[lead_id] = verdict


def _lead(**kw):
    lead = {"name": "Acme", "business_type": "HVAC", "review_count": 40, "rating": 4.5, "scored_at": None}
    lead.update(kw)
    return lead


def test_scorer_counters():
    store = FakeScoringStore(
        {
            1: _lead(_document="Source: https://a.com\n\nWe fix furnaces."),
            2: _lead(scored_at="2026-01-01"),
            3: _lead(_document="Source: https://c.com\n\nPE-backed platform."),
            4: _lead(),
        }
    )
    gw = FakeGateway(
        {"owner_names": []},          # lead 1 extraction
        _verdict(),                   # lead 1 scoring
        {"owner_names": []},          # lead 3 extraction
        _verdict(is_excluded=True, ownership_type="PE-backed", exclusion_reason="PE-backed"),
        _verdict(rationale=""),       # lead 4 scoring (no document: no extraction call)
    )
    stats_calls = []

    def stats_loader(business_type):
        stats_calls.append(business_type)
        return TypeStats("HVAC", 10, 4.4, 4.5, [float(i) for i in range(23)])

    scorer = LeadScorer("job-s", store=store, gateway=gw, stats_loader=stats_loader)
    counters = scorer.score_batch([1, 2, 3, 4, 99])

    assert counters.as_dict() == {"scored": 2, "skipped": 2, "failed": 1, "excluded": 1}
    assert set(store.saved) == {1, 3}
    assert stats_calls == ["HVAC"]
    assert "## Market Context" in gw.calls[1]["prompt"]
    assert store.jobs["job-s"] == {
        "status": "completed",
        "job_type": "scoring",
        "meta": counters.as_dict(),
    }


def test_rescore_includes_scored_leads():
    store = FakeScoringStore({2: _lead(scored_at="2026-01-01")})
    gw = FakeGateway(_verdict())
    counters = LeadScorer("job-r", store=store, gateway=gw, rescore=True, stats_loader=lambda t: None).score_batch([2])
    assert counters.scored == 1
    assert "## Market Context" not in gw.calls[0]["prompt"]


# ---------------------------------------------------------------- gateway


def _rate_limit_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.RateLimitError("slow down", response=httpx.Response(429, request=request), body=None)


class _FakeCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def create(self, **kwargs):
        self.calls += 1
        out = self.outcomes.pop(0)
        if isinstance(out, Exception):
            raise out
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=out))])


def _client(outcomes):
    completions = _FakeCompletions(outcomes)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_gateway_retries_throttling_with_backoff():
    client, completions = _client([_rate_limit_error(), _rate_limit_error(), '{"ok": true}'])
    sleeps = []
    gw = BrainGateway(client, sleep=sleeps.append, log_calls=False)

    assert gw.complete_json("p", "s", model="m") == '{"ok": true}'
    assert sleeps == [5, 15]
    assert completions.calls == 3


def test_gateway_gives_up_after_backoff_schedule():
    client, completions = _client([_rate_limit_error() for _ in range(4)])
    sleeps = []
    gw = BrainGateway(client, sleep=sleeps.append, log_calls=False)

    with pytest.raises(ProviderError) as exc:
        gw.complete_json("p", "s", model="m")
    assert exc.value.is_throttle
    assert sleeps == [5, 15, 45]
    assert completions.calls == 4
