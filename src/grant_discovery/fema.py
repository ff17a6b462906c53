from __future__ import annotations

import re
from typing import Any

import httpx

from .config import AppConfig
from .models import Opportunity, SourceQuery
from .transport import extract_list, request_json, to_date, to_str

SOURCE = "fema"
_STATE_RE = re.compile(r"^[A-Z]{2}$")
_PROGRAMS = (
    ("ihProgramDeclared", "Individual Assistance"),
    ("paProgramDeclared", "Public Assistance"),
    ("hmProgramDeclared", "Hazard Mitigation"),
)


def fetch_fema_opportunities(
    client: httpx.Client, config: AppConfig, query: SourceQuery
) -> list[Opportunity]:
    """Disaster declarations are not keyword-searchable; only the state filter applies."""
    settings = config.fema
    params: dict[str, Any] = {
        "$top": settings.limit,
        "$orderby": "declarationDate desc",
    }
    state = (query.state or "").strip().upper()
    if state:
        if not _STATE_RE.match(state):
            raise ValueError(f"Invalid state code: {query.state!r}")
        params["$filter"] = f"state eq '{state}'"
    data = request_json(client, "GET", settings.base_url, config, params=params)

    opportunities: list[Opportunity] = []
    for declaration in extract_list(data, "DisasterDeclarationsSummaries")[: settings.limit]:
        opportunity = _to_opportunity(declaration)
        if opportunity:
            opportunities.append(opportunity)
    return opportunities


def _to_opportunity(declaration: dict[str, Any]) -> Opportunity | None:
    number = to_str(declaration.get("disasterNumber"))
    title = to_str(declaration.get("declarationTitle") or declaration.get("title"))
    if not number or not title:
        return None

    declaration_type = to_str(declaration.get("declarationType")) or "DR"
    incident = to_str(declaration.get("incidentType")) or "Disaster"
    state = to_str(declaration.get("state")) or "unknown state"
    programs = [label for key, label in _PROGRAMS if declaration.get(key)]
    description = (
        f"FEMA disaster declaration. {incident} in {state}. "
        f"Programs: {', '.join(programs) if programs else 'none declared'}"
    )

    return Opportunity(
        source=SOURCE,
        external_id=f"DR-{number}",
        title=f"FEMA {declaration_type} Disaster Declaration: {title}",
        agency_name="Federal Emergency Management Agency",
        description=description,
        amount_ceiling=None,
        open_date=to_date(declaration.get("declarationDate")),
        close_date=None,
        url=f"https://www.fema.gov/disaster/{number}",
        category=incident,
        raw=declaration,
    )
