from __future__ import annotations

from datetime import date, timedelta
from typing import Any

import httpx

from .config import AppConfig
from .models import Opportunity, SourceQuery
from .transport import extract_list, request_json, to_date, to_str

SOURCE = "federal_register"


def fetch_federal_register_opportunities(
    client: httpx.Client, config: AppConfig, query: SourceQuery
) -> list[Opportunity]:
    settings = config.federal_register
    since = date.today() - timedelta(days=settings.lookback_days)
    terms = " ".join(query.keywords[: settings.max_keywords])
    params = {
        "conditions[term]": f"{terms} grant funding".strip(),
        "conditions[type][]": "NOTICE",
        "conditions[publication_date][gte]": since.isoformat(),
        "per_page": settings.limit,
        "order": "newest",
    }
    data = request_json(client, "GET", settings.base_url, config, params=params)

    opportunities: list[Opportunity] = []
    for document in extract_list(data, "results")[: settings.limit]:
        opportunity = _to_opportunity(document)
        if opportunity:
            opportunities.append(opportunity)
    return opportunities


def _to_opportunity(document: dict[str, Any]) -> Opportunity | None:
    external_id = to_str(document.get("document_number"))
    title = to_str(document.get("title"))
    if not external_id or not title:
        return None

    agencies = document.get("agencies") or []
    agency = None
    if isinstance(agencies, list) and agencies and isinstance(agencies[0], dict):
        agency = to_str(agencies[0].get("name"))

    return Opportunity(
        source=SOURCE,
        external_id=external_id,
        title=title,
        agency_name=agency or "Federal Government",
        description=to_str(document.get("abstract")),
        amount_ceiling=None,
        open_date=to_date(document.get("publication_date")),
        close_date=None,
        url=to_str(document.get("html_url")),
        category=to_str(document.get("type")),
        raw=document,
    )
