import json

import pytest

from dealflow import config
from dealflow.errors import ConfigurationError, ProviderError
from dealflow.google.places import RateLimiter, parse_place
from dealflow.places.ingest import PlacesIngestor
from dealflow.places.job_input import load_search_list, parse_job_input, parse_search_list
from dealflow.places.models import JobInput, PlacesPage, SearchSpec
from dealflow.places.normalize import extract_city_state, normalize_name
from dealflow.places.store import FRANCHISE_ATTACH, FRANCHISE_CREATE, franchise_action

from .conftest import FakePlacesClient, make_place


def _ingestor(store, pages, *, skip_cached=False, max_results=20, sleeps=None):
    job = JobInput(
        job_id="job-1",
        search_list="unused.json",
        campaign_id="camp-1",
        campaign_run_id="run-1",
        skip_cached_searches=skip_cached,
        max_results_per_search=max_results,
    )
    client = FakePlacesClient(pages)
    sleeps = sleeps if sleeps is not None else []
    return PlacesIngestor(job, store=store, client=client, sleep=sleeps.append), client


# ---------------------------------------------------------------- rate limiter


def test_rate_limiter_spaces_calls_by_min_interval(clock):
    limiter = RateLimiter(5, clock=clock, sleep=clock.sleep)
    limiter.wait()
    limiter.wait()
    clock.now += 0.05
    limiter.wait()
    assert clock.sleeps[0] == pytest.approx(0.2)
    assert clock.sleeps[1] == pytest.approx(0.15)


def test_rate_limiter_does_not_sleep_after_long_gap(clock):
    limiter = RateLimiter(5, clock=clock, sleep=clock.sleep)
    limiter.wait()
    clock.now += 1.0
    limiter.wait()
    assert clock.sleeps == []


def test_rate_limiter_rejects_zero_budget():
    with pytest.raises(ValueError):
        RateLimiter(0)


# ---------------------------------------------------------------- parsing


def test_parse_place_maps_address_components():
    rec = parse_place(make_place(1, name="  Joe's   Plumbing "))
    assert rec.place_id == "place-1"
    assert rec.city == "Denver"
    assert rec.state == "CO"
    assert rec.normalized_name == "joe's plumbing"
    assert rec.review_count == 11


def test_parse_place_without_id_is_dropped():
    assert parse_place({"displayName": {"text": "x"}}) is None


def test_city_falls_back_to_postal_town():
    city, state, zip_code = extract_city_state(
        [
            {"longText": "Reading", "types": ["postal_town"]},
            {"longText": "RG1 1AA", "types": ["postal_code"]},
        ]
    )
    assert (city, state, zip_code) == ("Reading", None, "RG1 1AA")


def test_normalize_name_collapses_whitespace():
    assert normalize_name("  ACME\tHeating  &  Air ") == "acme heating & air"


# ---------------------------------------------------------------- ingestion scenarios


def test_first_run_inserts_every_unseen_place(places_store):
    ingestor, _ = _ingestor(places_store, [PlacesPage(places=[make_place(i) for i in range(15)])])
    counters = ingestor.run([SearchSpec("plumbers in Denver, CO")])

    assert counters.leads_found == 15
    assert counters.duplicates_skipped == 0
    assert counters.queries_executed == 1
    assert places_store.jobs["job-1"]["status"] == "completed"
    assert places_store.runs["run-1"]["status"] == "completed"
    assert places_store.queries[0]["new_leads_count"] == 15


def test_rerun_counts_every_place_as_duplicate(places_store):
    pages = [PlacesPage(places=[make_place(i) for i in range(15)])]
    _ingestor(places_store, list(pages))[0].run([SearchSpec("plumbers in Denver, CO")])

    counters = _ingestor(places_store, list(pages))[0].run([SearchSpec("plumbers in Denver, CO")])

    assert counters.leads_found == 0
    assert counters.duplicates_skipped == 15
    assert len(places_store.leads) == 15


def test_cached_query_makes_no_provider_call(places_store):
    places_store.cached_queries.add(("plumbers in Denver, CO", None))
    ingestor, client = _ingestor(places_store, [PlacesPage(places=[make_place(1)])], skip_cached=True)

    counters = ingestor.run([SearchSpec("plumbers in Denver, CO")])

    assert client.calls == []
    assert counters.queries_skipped_cached == 1
    assert counters.queries_executed == 0
    assert places_store.queries == []


def test_pagination_stops_at_cap_and_waits_for_token(places_store):
    pages = [
        PlacesPage(places=[make_place(i) for i in range(20)], next_page_token="t1"),
        PlacesPage(places=[make_place(i) for i in range(20, 40)], next_page_token="t2"),
        PlacesPage(places=[make_place(i) for i in range(40, 60)], next_page_token="t3"),
    ]
    sleeps = []
    ingestor, client = _ingestor(places_store, pages, max_results=30, sleeps=sleeps)

    counters = ingestor.run([SearchSpec("hvac in Austin, TX")])

    assert counters.leads_found == 30
    assert [tok for _, tok in client.calls] == [None, "t1"]
    assert sleeps == [config.PAGE_TOKEN_WAIT]


def test_pagination_stops_after_consecutive_empty_pages(places_store):
    pages = [PlacesPage(places=[], next_page_token=f"t{i}") for i in range(10)]
    ingestor, client = _ingestor(places_store, pages)

    ingestor.run([SearchSpec("roofers in Boise, ID")])

    assert len(client.calls) == config.MAX_CONSECUTIVE_EMPTY_PAGES


def test_closed_places_are_not_ingested(places_store):
    page = PlacesPage(places=[make_place(1), make_place(2, status="CLOSED_PERMANENTLY")])
    counters = _ingestor(places_store, [page])[0].run([SearchSpec("q")])
    assert counters.leads_found == 1


def test_provider_error_aborts_only_that_query(places_store):
    class FlakyClient(FakePlacesClient):
        def search_text_page(self, text_query, **kw):
            if text_query == "bad":
                self.calls.append((text_query, None))
                raise ProviderError("boom", status_code=500, kind="searchText")
            return super().search_text_page(text_query, **kw)

    job = JobInput(job_id="job-1", search_list="x", max_results_per_search=20)
    client = FlakyClient([PlacesPage(places=[make_place(1)])])
    counters = PlacesIngestor(job, store=places_store, client=client, sleep=lambda s: None).run(
        [SearchSpec("bad"), SearchSpec("good")]
    )

    assert counters.errors == 1
    assert counters.leads_found == 1
    assert counters.queries_executed == 2


def test_same_name_places_share_one_franchise(places_store):
    page = PlacesPage(places=[make_place(1, name="Roto-Rooter"), make_place(2, name="roto-rooter ")])
    _ingestor(places_store, [page])[0].run([SearchSpec("q")])

    assert places_store.franchises == {"roto-rooter": 1}
    assert places_store.lead_franchise == {1: 1, 2: 1}


def test_unique_name_stays_unlinked(places_store):
    _ingestor(places_store, [PlacesPage(places=[make_place(1, name="Only One")])])[0].run([SearchSpec("q")])

    assert places_store.franchises == {}
    assert places_store.lead_franchise == {}


def test_later_location_attaches_to_existing_franchise(places_store):
    pages = [
        PlacesPage(places=[make_place(1, name="Mr. Rooter"), make_place(2, name="Mr. Rooter"), make_place(3)]),
        PlacesPage(places=[make_place(4, name="MR.  ROOTER")]),
    ]
    _ingestor(places_store, pages)[0].run([SearchSpec("q1"), SearchSpec("q2")])

    assert places_store.franchises == {"mr. rooter": 1}
    assert places_store.lead_franchise == {1: 1, 2: 1, 4: 1}


def test_franchise_action_branches():
    assert franchise_action(7, name_shared=False) == FRANCHISE_ATTACH
    assert franchise_action(7, name_shared=True) == FRANCHISE_ATTACH
    assert franchise_action(None, name_shared=True) == FRANCHISE_CREATE
    assert franchise_action(None, name_shared=False) is None


def test_place_seen_earlier_in_run_is_dropped_from_later_query(places_store):
    pages = [
        PlacesPage(places=[make_place(1), make_place(2)]),
        PlacesPage(places=[make_place(2), make_place(3)]),
    ]
    counters = _ingestor(places_store, pages)[0].run([SearchSpec("plumbers"), SearchSpec("drain cleaning")])

    assert counters.leads_found == 3
    assert counters.duplicates_skipped == 0
    assert [q["results_count"] for q in places_store.queries] == [2, 1]
    assert places_store.leads["place-2"]["search_query_id"] == 1


# ---------------------------------------------------------------- job input


def test_job_input_requires_job_id_and_pointer():
    with pytest.raises(ConfigurationError):
        parse_job_input(json.dumps({"jobId": "j"}))
    with pytest.raises(ConfigurationError):
        parse_job_input("not json")
    with pytest.raises(ConfigurationError):
        parse_job_input("")


def test_job_input_clamps_max_results():
    job = parse_job_input({"jobId": "j", "searchList": "s.json", "maxResultsPerSearch": 500, "skipCachedSearches": "true"})
    assert job.max_results_per_search == config.MAX_RESULTS_CAP
    assert job.skip_cached_searches is True


def test_search_list_accepts_strings_and_objects():
    specs = parse_search_list(
        {"searches": ["plumbers in Denver, CO", "  ", {"textQuery": "hvac", "includedType": "hvac_contractor"}, {"textQuery": ""}]}
    )
    assert specs == [SearchSpec("plumbers in Denver, CO"), SearchSpec("hvac", "hvac_contractor")]


def test_load_search_list_from_file(tmp_path):
    path = tmp_path / "searches.json"
    path.write_text(json.dumps({"searches": ["a", "b"]}), encoding="utf-8")
    assert [s.text_query for s in load_search_list(str(path))] == ["a", "b"]


def test_load_search_list_missing_file():
    with pytest.raises(ConfigurationError):
        load_search_list("/nonexistent/searches.json")
