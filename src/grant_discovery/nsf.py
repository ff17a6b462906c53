from __future__ import annotations

from typing import Any

import httpx

from .config import AppConfig
from .models import Opportunity, SourceQuery
from .transport import extract_list, request_json, to_amount, to_date, to_str

SOURCE = "nsf_awards"
PRINT_FIELDS = (
    "id,title,abstractText,agency,awardeeName,fundsObligatedAmt,"
    "date,startDate,expDate,primaryProgram"
)


def fetch_nsf_opportunities(
    client: httpx.Client, config: AppConfig, query: SourceQuery
) -> list[Opportunity]:
    settings = config.nsf
    params = {
        "keyword": " ".join(query.keywords[: settings.max_keywords]),
        "printFields": PRINT_FIELDS,
    }
    data = request_json(client, "GET", settings.base_url, config, params=params)

    opportunities: list[Opportunity] = []
    # The awards API ignores page size, so truncate locally.
    for award in extract_list(data, "response.award")[: settings.limit]:
        opportunity = _to_opportunity(award)
        if opportunity:
            opportunities.append(opportunity)
    return opportunities


def _to_opportunity(award: dict[str, Any]) -> Opportunity | None:
    external_id = to_str(award.get("id"))
    title = to_str(award.get("title"))
    if not external_id or not title:
        return None

    return Opportunity(
        source=SOURCE,
        external_id=external_id,
        title=title,
        agency_name="National Science Foundation",
        description=to_str(award.get("abstractText")),
        amount_ceiling=to_amount(award.get("fundsObligatedAmt")),
        open_date=to_date(award.get("startDate")),
        close_date=to_date(award.get("expDate")),
        url=f"https://www.nsf.gov/awardsearch/showAward?AWD_ID={external_id}",
        category=to_str(award.get("primaryProgram")),
        raw=award,
    )
