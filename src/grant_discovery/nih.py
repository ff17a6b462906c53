from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from .config import AppConfig
from .models import Opportunity, SourceQuery
from .transport import extract_list, request_json, to_amount, to_date, to_str

SOURCE = "nih_reporter"
DEFAULT_AGENCY = "National Institutes of Health"


def fetch_nih_opportunities(
    client: httpx.Client, config: AppConfig, query: SourceQuery
) -> list[Opportunity]:
    settings = config.nih
    payload = {
        "criteria": {
            "advanced_text_search": {
                "operator": "or",
                "search_field": "all",
                "search_text": " ".join(query.keywords[: settings.max_keywords]),
            },
            "fiscal_years": list(settings.fiscal_years),
        },
        "offset": 0,
        "limit": settings.limit,
        "sort_field": "award_amount",
        "sort_order": "desc",
    }
    data = request_json(client, "POST", settings.base_url, config, json=payload)

    opportunities: list[Opportunity] = []
    for project in extract_list(data, "results")[: settings.limit]:
        opportunity = _to_opportunity(project)
        if opportunity:
            opportunities.append(opportunity)
    return opportunities


def _to_opportunity(project: dict[str, Any]) -> Opportunity | None:
    external_id = to_str(project.get("project_num")) or to_str(project.get("appl_id"))
    title = to_str(project.get("project_title"))
    if not external_id or not title:
        return None

    admin = project.get("agency_ic_admin")
    agency = to_str(admin.get("name")) if isinstance(admin, dict) else None

    return Opportunity(
        source=SOURCE,
        external_id=external_id,
        title=title,
        agency_name=agency or DEFAULT_AGENCY,
        description=to_str(project.get("abstract_text")),
        amount_ceiling=to_amount(project.get("award_amount")),
        open_date=to_date(project.get("project_start_date")),
        close_date=to_date(project.get("project_end_date")),
        url=f"https://reporter.nih.gov/project-details/{quote(external_id)}",
        category=to_str(project.get("activity_code")),
        raw=project,
    )
