from __future__ import annotations

from datetime import date, timedelta
from typing import Any

import httpx

from .config import AppConfig
from .models import Opportunity, SourceQuery
from .transport import extract_list, request_json, to_amount, to_str

SOURCE = "usa_spending"
FIELDS = [
    "Award ID",
    "Recipient Name",
    "Award Amount",
    "Description",
    "Awarding Agency",
    "CFDA Number",
]


def fetch_usaspending_opportunities(
    client: httpx.Client, config: AppConfig, query: SourceQuery
) -> list[Opportunity]:
    """Past grant awards; useful for spotting funders, never open calls."""
    settings = config.usa_spending
    today = date.today()
    payload = {
        "filters": {
            "keywords": query.keywords[: settings.max_keywords],
            "award_type_codes": ["02", "03", "04", "05"],
            "time_period": [
                {
                    "start_date": (today - timedelta(days=settings.lookback_days)).isoformat(),
                    "end_date": today.isoformat(),
                }
            ],
        },
        "fields": FIELDS,
        "limit": settings.limit,
        "sort": "Award Amount",
        "order": "desc",
    }
    data = request_json(client, "POST", settings.base_url, config, json=payload)

    opportunities: list[Opportunity] = []
    for award in extract_list(data, "results")[: settings.limit]:
        opportunity = _to_opportunity(award)
        if opportunity:
            opportunities.append(opportunity)
    return opportunities


def _to_opportunity(award: dict[str, Any]) -> Opportunity | None:
    external_id = to_str(award.get("Award ID"))
    recipient = to_str(award.get("Recipient Name"))
    if not external_id or not recipient:
        return None

    return Opportunity(
        source=SOURCE,
        external_id=external_id,
        title=f"Award to {recipient}",
        agency_name=to_str(award.get("Awarding Agency")) or "Federal Government",
        description=to_str(award.get("Description")),
        amount_ceiling=to_amount(award.get("Award Amount")),
        open_date=None,
        close_date=None,
        url=f"https://www.usaspending.gov/award/{external_id}",
        category=to_str(award.get("CFDA Number")),
        raw=award,
    )
