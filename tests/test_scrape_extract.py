import json

import requests

from dealflow import config
from dealflow.scrape.aggregate import aggregate_pages, build_site_document, order_pages, page_text
from dealflow.scrape.contact import extract_emails, extract_phones, find_contact_page_url, is_fake_phone
from dealflow.scrape.history import acquisition_summary, extract_acquisition_signals, extract_founded_year
from dealflow.scrape.models import FetchedPage
from dealflow.scrape.runner import LeadExtractor
from dealflow.scrape.snippets import extract_snippets, is_clean_block
from dealflow.scrape.social import extract_social_links, from_urls
from dealflow.scrape.storage import ScrapeTarget
from dealflow.scrape.structured import extract_schema_org
from dealflow.scrape.team import (
    classify_title,
    dedupe_team_members,
    extract_first_name_contacts,
    extract_headcount,
    extract_team_members,
)
from dealflow.scrape.models import TeamMember


def _page(url, body, **kw):
    return FetchedPage(url=url, html=f"<html><body>{body}</body></html>", **kw)


# ---------------------------------------------------------------- aggregate


def test_founded_year_and_first_name_contact_without_owner():
    data = aggregate_pages(
        [_page("https://joesplumbing.com/", "<p>Founded in 2005. Call Mike for a quote.</p>")],
        now_year=2026,
    )
    assert data.founded_year.value == 2005
    assert data.years_in_business == 21
    assert [c.value for c in data.first_name_contacts] == ["Mike"]
    assert data.team_members == []


def test_listing_phone_on_site_becomes_the_only_phone():
    body = "<p>Call (303) 555-0187 or (720) 555-1234. Office: 303-444-9876</p>"
    confirmed = aggregate_pages([_page("https://a.com/", body)], listing_phone="(303) 444-9876")
    assert [p.value for p in confirmed.phones] == ["3034449876"]
    assert confirmed.listing_phone_confirmed is True

    unconfirmed = aggregate_pages([_page("https://a.com/", body)])
    assert [p.value for p in unconfirmed.phones] == ["7205551234", "3034449876"]
    assert unconfirmed.listing_phone_confirmed is False


def test_json_ld_values_win_over_heuristics():
    ld = {
        "@context": "https://schema.org",
        "@graph": [
            {
                "@type": "Plumber",
                "name": "Acme",
                "foundingDate": "1998-04-01",
                "founder": {"@type": "Person", "name": "Jane Smith"},
                "sameAs": ["https://www.facebook.com/acme"],
            },
            {"@type": "WebPage", "name": "Home"},
        ],
    }
    html = (
        '<html><head><script type="application/ld+json">'
        + json.dumps(ld)[:-1]
        + ",}</script></head><body><p>Established in 2005</p></body></html>"
    )
    schema = extract_schema_org(html)
    assert schema.founding_year == 1998
    assert schema.founders == ["Jane Smith"]

    data = aggregate_pages([FetchedPage(url="https://acme.com/", html=html)], now_year=2026)
    assert data.founded_year.value == 1998
    assert data.years_in_business == 28
    assert data.social["facebook"].url == "https://www.facebook.com/acme"
    assert [(m.name, m.title, m.is_executive) for m in data.team_members] == [("Jane Smith", "Founder", True)]


def test_pages_ordered_by_priority_keywords():
    pages = [
        FetchedPage(url="https://a.com/"),
        FetchedPage(url="https://a.com/contact"),
        FetchedPage(url="https://a.com/about"),
    ]
    assert [p.url for p in order_pages(pages)] == [
        "https://a.com/about",
        "https://a.com/contact",
        "https://a.com/",
    ]


def test_site_document_headers_and_cap():
    pages = [
        FetchedPage(url="https://a.com/", text="Welcome home"),
        FetchedPage(url="https://a.com/about", text="About our company"),
    ]
    doc = build_site_document(pages)
    assert doc.startswith("Source: https://a.com/about\n\nAbout our company")
    assert "Source: https://a.com/\n\nWelcome home" in doc
    assert len(build_site_document(pages, max_chars=40)) <= 40


def _crowded_pages(n_pages=10):
    firsts = ["Alan", "Brian", "Carla", "Diego", "Erin", "Frank"]
    lasts = ["Baker", "Chavez", "Dunn", "Ellis", "Fisher"]
    names = [f"{f} {l}" for f in firsts for l in lasts]
    pages = []
    for i in range(n_pages):
        lines = []
        for j in range(3):
            lines.append(f"crew{i}{j}@acmeplumbing.com")
            lines.append(f"(720) 38{i}-4{j}{i}7")
            lines.append(f"{names[(i * 3 + j) % len(names)]} - Technician")
            lines.append(f"Our family owned company has been serving homeowners across the metro area, story {i}{j}.")
        pages.append(FetchedPage(url=f"https://acmeplumbing.com/services-{i}", text="\n".join(lines)))
    return pages


def test_collections_capped_across_pages():
    data = aggregate_pages(_crowded_pages())

    assert len(data.emails) == config.MAX_EMAILS
    assert [e.value for e in data.emails[:3]] == ["crew00@acmeplumbing.com", "crew01@acmeplumbing.com", "crew02@acmeplumbing.com"]
    assert len(data.phones) == config.MAX_PHONES
    assert data.phones[0].value == "7203804007"
    assert len(data.team_members) == config.MAX_TEAM_MEMBERS


def test_snippets_capped_per_category_across_pages():
    data = aggregate_pages(_crowded_pages())
    history = [s for s in data.snippets if s.category == "history"]

    assert len(history) == config.MAX_SNIPPETS_PER_CATEGORY
    assert history[0].source_url == "https://acmeplumbing.com/services-0"


def test_aggregation_leaves_pages_untouched():
    page = _page("https://a.com/", "<p>Founded in 2005.</p>")
    aggregate_pages([page], now_year=2026)
    build_site_document([page])

    assert page.text == ""
    assert page_text(page) == "Founded in 2005."


def test_contact_page_url():
    assert find_contact_page_url(["https://a.com/", "https://a.com/contact-us"]) == "https://a.com/contact-us"
    assert find_contact_page_url(["https://a.com/pages/contact-form"]) == "https://a.com/pages/contact-form"
    assert find_contact_page_url(["https://a.com/services"]) is None


# ---------------------------------------------------------------- contact


def test_emails_deobfuscated_and_filtered():
    emails = extract_emails(
        "Email us at info [at] acme-plumbing.com or jane@example.com",
        '<a href="mailto:Sales@Acme-Plumbing.com?subject=hi">Sales</a>',
    )
    assert emails == ["info@acme-plumbing.com", "sales@acme-plumbing.com"]


def test_fake_phones_rejected():
    assert is_fake_phone("3035550142")
    assert is_fake_phone("1111111111")
    assert is_fake_phone("3034444444")
    assert not is_fake_phone("3034449876")
    assert extract_phones("Call 1-800-555-0100 or 720.555.1234") == ["7205551234"]


# ---------------------------------------------------------------- social


def test_social_share_links_rejected():
    html = (
        '<a href="https://www.facebook.com/sharer.php?u=x">share</a>'
        '<a href="https://www.facebook.com/AcmePlumbing/">fb</a>'
        '<a href="https://www.linkedin.com/company/acme-plumbing">li</a>'
        '<a href="https://twitter.com/intent/tweet">tweet</a>'
    )
    found = extract_social_links(html)
    assert found == {
        "facebook": "https://www.facebook.com/AcmePlumbing",
        "linkedin": "https://www.linkedin.com/company/acme-plumbing",
    }


def test_same_as_urls_one_per_platform():
    found = from_urls(["https://www.instagram.com/p/abc123", "https://instagram.com/acmeplumbing"])
    assert found == {"instagram": "https://instagram.com/acmeplumbing"}


# ---------------------------------------------------------------- team


def test_team_members_with_titles():
    text = "Jane Smith - Owner\nBob Jones, Lead Technician\nContact Us Today"
    members = extract_team_members(text, "https://acme.com/about")
    assert [(m.name, m.title, m.is_executive) for m in members] == [
        ("Jane Smith", "Owner", True),
        ("Bob Jones", "Lead Technician", False),
    ]


def test_standalone_names_only_on_team_pages():
    text = "Meet the Team\nMaria Lopez\nDavid K. Chen"
    assert [m.name for m in extract_team_members(text, "https://acme.com/team")] == ["Maria Lopez", "David K. Chen"]
    assert extract_team_members(text, "https://acme.com/services") == []


def test_dedupe_prefers_executive_entry():
    u = "https://a.com/about"
    merged = dedupe_team_members(
        [TeamMember("jane smith", None, False, u), TeamMember("Jane  Smith", "Owner", True, u)]
    )
    assert len(merged) == 1
    assert merged[0].is_executive


def test_classify_title_compounds():
    assert classify_title("VP of Sales") is True
    assert classify_title("Owner, Master Plumber") is True
    assert classify_title("Estimator") is False
    assert classify_title("Lorem Ipsum") is None


def test_first_name_contacts():
    text = "Call Mike today! Ask for Raul. Call Us now. Call John Smith."
    assert extract_first_name_contacts(text) == ["Mike", "Raul"]


def test_headcount_most_frequent_then_range_upper_bound():
    assert extract_headcount("Our 15 employees serve Denver. All 15 employees are certified.")[0] == 15
    assert extract_headcount("A 10-25 employees firm")[0] == 25
    assert extract_headcount("team of 50000") is None


# ---------------------------------------------------------------- history


def test_founded_year_variants():
    assert extract_founded_year("25 years in business", now_year=2026)[0] == 2001
    assert extract_founded_year("Celebrating our 30th anniversary", now_year=2026)[0] == 1996
    assert extract_founded_year("Since 2099 we have...", now_year=2026) is None
    assert extract_founded_year("established 1750", now_year=2026) is None


def test_acquisition_signal_with_date():
    signals = extract_acquisition_signals(
        "Smith Plumbing was acquired by Apex Services Group in March 2021. We still serve Denver.",
        "https://a.com/news",
    )
    assert len(signals) == 1
    assert signals[0].signal_type == "acquired_by"
    assert signals[0].mentioned_date == "March 2021"
    assert acquisition_summary(signals).endswith("(March 2021)")


# ---------------------------------------------------------------- snippets


def test_snippet_categories():
    html = (
        "<p>We offer annual maintenance plans for every commercial and residential customer.</p>"
        "<p>Click here to learn more about our services today</p>"
    )
    snippets = extract_snippets(html, "https://a.com/")
    assert {s.category for s in snippets} == {"recurring_revenue"}
    assert not is_clean_block("Short")


# ---------------------------------------------------------------- runner


class _FakeScrapeStore:
    def __init__(self):
        self.jobs = {}
        self.persisted = []
        self.failures = []

    def start_job(self, job_id, *, job_type):
        self.jobs[job_id] = {"status": "running", "job_type": job_type}

    def finish_job(self, job_id, *, status, error_message=None, meta=None):
        self.jobs[job_id].update(status=status, meta=meta)

    def persist(self, lead_id, root_url, pages, extracted, *, job_id=None, duration_ms=0):
        self.persisted.append((lead_id, len(list(pages))))
        return len(self.persisted)

    def record_failure(self, lead_id, root_url, error_message, *, job_id, duration_ms):
        self.failures.append((lead_id, error_message))


class _FakeCrawler:
    def __init__(self, sites):
        self.sites = sites

    def crawl(self, url):
        result = self.sites[url]
        if isinstance(result, Exception):
            raise result
        return result


def test_extractor_counts_crawled_and_failed():
    store = _FakeScrapeStore()
    crawler = _FakeCrawler(
        {
            "https://ok.com": [_page("https://ok.com/", "<p>Founded in 1990.</p>")],
            "https://empty.com": [],
            "https://down.com": requests.ConnectionError("refused"),
        }
    )
    extractor = LeadExtractor("job-x", store=store, crawler=crawler, clock=lambda: 0.0)
    counters = extractor.run(
        [ScrapeTarget(1, "https://ok.com"), ScrapeTarget(2, "https://empty.com"), ScrapeTarget(3, "https://down.com")]
    )

    assert counters.crawled == 1
    assert counters.failed == 2
    assert counters.with_founded_year == 1
    assert store.persisted == [(1, 1)]
    assert [lead for lead, _ in store.failures] == [2, 3]
    assert store.jobs["job-x"]["status"] == "completed"
    assert store.jobs["job-x"]["job_type"] == "extract"
