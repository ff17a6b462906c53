from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any


@dataclass(slots=True)
class Opportunity:
    source: str
    external_id: str
    title: str
    agency_name: str | None
    description: str | None
    amount_ceiling: float | None
    open_date: date | None
    close_date: date | None
    url: str | None
    category: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass(slots=True)
class ScoredOpportunity:
    opportunity: Opportunity
    match_score: int
    win_probability: int
    matched_tags: list[str]

    def to_dict(self) -> dict[str, Any]:
        opp = self.opportunity
        return {
            "source": opp.source,
            "id": opp.external_id,
            "title": opp.title,
            "agency": opp.agency_name,
            "description": opp.description,
            "amount_available": opp.amount_ceiling,
            "open_date": opp.open_date.isoformat() if opp.open_date else None,
            "close_date": opp.close_date.isoformat() if opp.close_date else None,
            "category": opp.category,
            "url": opp.url,
            "target_modules": list(self.matched_tags),
            "match_score": self.match_score,
            "win_probability": self.win_probability,
        }


@dataclass(slots=True)
class GrantRecord:
    grant_name: str
    opportunity_number: str
    agency_name: str | None
    description: str | None
    amount_available: float | None
    application_opens: date | None
    application_deadline: date | None
    status: str
    priority: str
    target_modules: list[str]
    match_score: int
    win_probability: int
    website_url: str | None
    discovery_source: str


@dataclass(slots=True)
class SourceReport:
    name: str
    count: int
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "count": self.count}
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class RunSummary:
    started_at: datetime
    taxonomy_version: str
    success: bool = True
    duration_ms: int = 0
    discovered: int = 0
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    high_priority: int = 0
    timed_out: bool = False
    errors: list[str] = field(default_factory=list)
    sources: list[SourceReport] = field(default_factory=list)
    urgent_deadlines: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "timestamp": self.started_at.isoformat(),
            "durationMs": self.duration_ms,
            "discovered": self.discovered,
            "imported": self.imported,
            "updated": self.updated,
            "skipped": self.skipped,
            "highPriority": self.high_priority,
            "timedOut": self.timed_out,
            "taxonomyVersion": self.taxonomy_version,
            "errors": list(self.errors),
            "sources": [report.to_dict() for report in self.sources],
            "urgentDeadlines": list(self.urgent_deadlines),
        }


@dataclass(slots=True)
class SourceQuery:
    keywords: list[str]
    state: str | None = None
