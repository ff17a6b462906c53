from collections.abc import Callable
from datetime import date
from typing import Any

import httpx
import pytest

from grant_discovery.config import AppConfig
from grant_discovery.models import Opportunity, ScoredOpportunity
from grant_discovery.store import GrantStore

EMPTY_RESPONSES: dict[str, Any] = {
    "www.grants.gov": {"oppHits": []},
    "api.reporter.nih.gov": {"results": []},
    "api.nsf.gov": {"response": {"award": []}},
    "www.federalregister.gov": {"results": []},
    "www.fema.gov": {"DisasterDeclarationsSummaries": []},
    "api.usaspending.gov": {"results": []},
}


@pytest.fixture
def config(tmp_path) -> AppConfig:
    app_config = AppConfig()
    app_config.pipeline.retry_max = 0
    app_config.pipeline.retry_backoff_seconds = 0.1
    app_config.pipeline.deadline_seconds = 10.0
    app_config.store.database_url = f"sqlite:///{tmp_path / 'grants.db'}"
    return app_config


@pytest.fixture
def store(config):
    grant_store = GrantStore(config.store.database_url)
    grant_store.create_schema()
    yield grant_store
    grant_store.close()


@pytest.fixture
def source_client() -> Callable[..., httpx.Client]:
    """Build an httpx client that answers every source host from canned payloads.

    Overrides map a host to a JSON payload, an ``httpx.Response``, or a
    callable taking the request.
    """

    def factory(
        overrides: dict[str, Any] | None = None,
        calls: list[httpx.Request] | None = None,
    ) -> httpx.Client:
        responses = {**EMPTY_RESPONSES, **(overrides or {})}

        def handler(request: httpx.Request) -> httpx.Response:
            if calls is not None:
                calls.append(request)
            value = responses.get(request.url.host, {})
            if isinstance(value, httpx.Response):
                return value
            if callable(value):
                return value(request)
            return httpx.Response(200, json=value)

        return httpx.Client(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def make_opportunity() -> Callable[..., Opportunity]:
    def factory(**overrides: Any) -> Opportunity:
        values: dict[str, Any] = {
            "source": "grants_gov",
            "external_id": "OPP-1",
            "title": "",
            "agency_name": "Test Agency",
            "description": "",
            "amount_ceiling": None,
            "open_date": None,
            "close_date": None,
            "url": "https://example.gov/opp",
        }
        values.update(overrides)
        return Opportunity(**values)

    return factory


@pytest.fixture
def make_scored(make_opportunity) -> Callable[..., ScoredOpportunity]:
    def factory(
        match_score: int = 50,
        win_probability: int = 20,
        matched_tags: list[str] | None = None,
        **overrides: Any,
    ) -> ScoredOpportunity:
        overrides.setdefault("title", "Community Resilience Grant")
        return ScoredOpportunity(
            opportunity=make_opportunity(**overrides),
            match_score=match_score,
            win_probability=win_probability,
            matched_tags=matched_tags if matched_tags is not None else ["disaster-relief"],
        )

    return factory
