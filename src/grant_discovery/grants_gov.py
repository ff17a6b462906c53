from __future__ import annotations

from typing import Any

import httpx

from .config import AppConfig
from .models import Opportunity, SourceQuery
from .transport import extract_list, request_json, to_amount, to_date, to_str

SOURCE = "grants_gov"


def fetch_grants_gov_opportunities(
    client: httpx.Client, config: AppConfig, query: SourceQuery
) -> list[Opportunity]:
    settings = config.grants_gov
    params: dict[str, Any] = {
        "keyword": " OR ".join(query.keywords[: settings.max_keywords]),
        "oppStatuses": "forecasted|posted",
        "sortBy": "openDate|desc",
        "rows": settings.limit,
    }
    data = request_json(client, "GET", settings.base_url, config, params=params)

    opportunities: list[Opportunity] = []
    for hit in extract_list(data, "oppHits")[: settings.limit]:
        opportunity = _to_opportunity(hit, settings.detail_url)
        if opportunity:
            opportunities.append(opportunity)
    return opportunities


def _to_opportunity(hit: dict[str, Any], detail_url: str) -> Opportunity | None:
    external_id = to_str(hit.get("id"))
    title = to_str(hit.get("title"))
    if not external_id or not title:
        return None

    agency = hit.get("agency")
    agency_name = to_str(agency.get("name")) if isinstance(agency, dict) else to_str(agency)
    category = hit.get("category")

    return Opportunity(
        source=SOURCE,
        external_id=external_id,
        title=title,
        agency_name=agency_name or to_str(hit.get("agencyCode")),
        description=to_str(hit.get("synopsis")),
        amount_ceiling=to_amount(hit.get("awardCeiling")),
        open_date=to_date(hit.get("openDate")),
        close_date=to_date(hit.get("closeDate")),
        url=f"{detail_url}{external_id}",
        category=to_str(category.get("name")) if isinstance(category, dict) else to_str(category),
        raw=hit,
    )
