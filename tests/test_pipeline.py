import threading
from datetime import date, timedelta

import httpx
import pytest

from grant_discovery import pipeline
from grant_discovery.pipeline import import_opportunity, run_pipeline, search_opportunities

TODAY = date(2026, 10, 1)

RURAL_HIT = {
    "id": "HRSA-26-014",
    "title": "Rural Telehealth Access Grant",
    "agency": {"name": "Health Resources and Services Administration"},
    "synopsis": "Expands telehealth services in rural counties.",
    "awardCeiling": 250000,
    "openDate": "09/01/2026",
    "closeDate": "12/31/2026",
}

WILDFIRE_TITLE = "Community Wildfire Resilience and Disaster Recovery Program"


def test_rural_telehealth_opportunity_is_scored_and_imported(config, store, source_client):
    client = source_client({"www.grants.gov": {"oppHits": [RURAL_HIT]}})

    summary = run_pipeline(config, store, client=client, today=TODAY)

    row = store.get("HRSA-26-014")
    assert summary.success is True
    assert (summary.discovered, summary.imported, summary.high_priority) == (1, 1, 0)
    assert row.target_modules == ["rural-health"]
    assert row.match_score == 35
    assert row.win_probability == 24
    assert row.priority == "low"
    assert row.status == "researching"
    assert row.website_url.endswith("HRSA-26-014")


def test_same_title_from_two_sources_imports_once(config, store, source_client):
    client = source_client(
        {
            "www.grants.gov": {"oppHits": [{"id": "FEMA-26-100", "title": WILDFIRE_TITLE}]},
            "api.reporter.nih.gov": {
                "results": [{"project_num": "1R21ES000001-01", "project_title": WILDFIRE_TITLE}]
            },
        }
    )

    summary = run_pipeline(config, store, client=client, today=TODAY)

    assert summary.discovered == 2
    assert summary.imported == 1
    assert store.count() == 1
    assert store.get("FEMA-26-100").discovery_source == "grants_gov"


def test_second_run_skips_already_imported(config, store, source_client):
    client = source_client({"www.grants.gov": {"oppHits": [RURAL_HIT]}})

    run_pipeline(config, store, client=client, today=TODAY)
    again = run_pipeline(config, store, client=client, today=TODAY)

    assert (again.imported, again.skipped) == (0, 1)
    assert store.count() == 1
    assert len(store.run_logs()) == 2


def test_low_scores_are_discovered_but_not_imported(config, store, source_client):
    hit = {"id": "X-1", "title": "Regional Transportation Study"}
    client = source_client({"www.grants.gov": {"oppHits": [hit]}})

    summary = run_pipeline(config, store, client=client, today=TODAY)

    assert summary.discovered == 1
    assert summary.imported == 0
    assert store.count() == 0


def test_failing_source_is_reported_and_run_still_succeeds(config, store, source_client):
    client = source_client(
        {
            "www.grants.gov": {"oppHits": [RURAL_HIT]},
            "api.nsf.gov": httpx.Response(500, text="unavailable"),
        }
    )

    summary = run_pipeline(config, store, client=client, today=TODAY)

    assert summary.success is True
    assert summary.imported == 1
    assert any(error.startswith("NSF Awards:") for error in summary.errors)
    nsf = next(report for report in summary.sources if report.name == "NSF Awards")
    assert nsf.count == 0


def test_run_past_deadline_still_writes_summary(config, store, source_client):
    release = threading.Event()

    def stalled(request):
        release.wait(timeout=5)
        return httpx.Response(200, json={"oppHits": [RURAL_HIT]})

    config.pipeline.deadline_seconds = 0.2
    client = source_client({"www.grants.gov": stalled})
    try:
        summary = run_pipeline(config, store, client=client, today=TODAY)
    finally:
        release.set()

    logs = store.run_logs()
    assert summary.timed_out is True
    assert "Grants.gov: timed out" in summary.errors
    assert len(logs) == 1
    assert logs[0].details["timedOut"] is True
    assert "stopped at deadline" in logs[0].message


def test_pipeline_failure_is_logged_then_raised(config, store, source_client, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("ranking exploded")

    monkeypatch.setattr(pipeline, "dedupe_and_rank", broken)

    with pytest.raises(RuntimeError):
        run_pipeline(config, store, client=source_client(), today=TODAY)

    logs = store.run_logs()
    assert len(logs) == 1
    assert logs[0].details["success"] is False
    assert "ranking exploded" in logs[0].details["errors"][-1]


def test_urgent_deadlines_are_listed(config, store, source_client):
    closing = {**RURAL_HIT, "closeDate": (TODAY + timedelta(days=5)).strftime("%m/%d/%Y")}
    client = source_client({"www.grants.gov": {"oppHits": [closing]}})

    summary = run_pipeline(config, store, client=client, today=TODAY)

    assert [item["grant_name"] for item in summary.urgent_deadlines] == [
        "Rural Telehealth Access Grant"
    ]
    assert summary.to_dict()["urgentDeadlines"][0]["application_deadline"] == "2026-10-06"


def test_requested_modules_narrow_keywords_and_tags(config, store, source_client):
    calls: list[httpx.Request] = []
    client = source_client({"www.grants.gov": {"oppHits": [RURAL_HIT]}}, calls=calls)

    run_pipeline(
        config, store, tags=["rural-health"], source_names=["grants_gov"], client=client, today=TODAY
    )

    assert len(calls) == 1
    assert calls[0].url.params["keyword"].split(" OR ") == [
        "rural",
        "telehealth",
        "telemedicine",
        "underserved",
        "healthcare access",
    ]


def test_search_returns_ranked_results_without_importing(config, store, source_client):
    wildfire = {"id": "FEMA-26-100", "title": WILDFIRE_TITLE}
    client = source_client({"www.grants.gov": {"oppHits": [RURAL_HIT, wildfire]}})

    result = search_opportunities(config, client=client, today=TODAY)
    payload = result.to_dict()

    assert payload["success"] is True
    assert payload["count"] == 2
    assert [item["id"] for item in payload["opportunities"]] == ["FEMA-26-100", "HRSA-26-014"]
    assert len(payload["keywords_used"]) == config.pipeline.keyword_limit
    assert store.count() == 0


def test_import_opportunity_rescores_payload(config, store):
    payload = {
        "id": "HRSA-26-014",
        "source": "grants_gov",
        "title": "Rural Telehealth Access Grant",
        "description": "Expands telehealth services in rural counties.",
        "close_date": "2026-12-31",
        "match_score": 99,
    }

    outcome = import_opportunity(config, store, payload, today=TODAY)

    assert outcome.action == "imported"
    assert store.get("HRSA-26-014").match_score == 35


def test_import_opportunity_requires_id_and_title(config, store):
    with pytest.raises(ValueError):
        import_opportunity(config, store, {"title": "No identifier"})


def test_disaster_declarations_are_always_imported(config, store, source_client):
    declaration = {
        "disasterNumber": 4801,
        "declarationTitle": "SEVERE STORMS AND STRAIGHT-LINE WINDS",
        "declarationType": "DR",
        "incidentType": "Severe Storm",
        "state": "OK",
        "declarationDate": "2026-09-18T00:00:00.000Z",
        "ihProgramDeclared": True,
        "paProgramDeclared": True,
    }
    client = source_client({"www.fema.gov": {"DisasterDeclarationsSummaries": [declaration]}})

    summary = run_pipeline(config, store, client=client, today=TODAY)

    row = store.get("DR-4801")
    assert (summary.discovered, summary.imported, summary.high_priority) == (1, 1, 1)
    assert row.target_modules == ["disaster-relief"]
    assert row.match_score == 85
    assert row.win_probability == 70
    assert row.discovery_source == "fema"
