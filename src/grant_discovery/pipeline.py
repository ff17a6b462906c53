from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError

from .config import AppConfig
from .dedupe import dedupe_and_rank
from .importer import ImportOutcome, Importer
from .models import Opportunity, RunSummary, ScoredOpportunity, SourceQuery, SourceReport
from .scorer import score_all, score_opportunity
from .sources import SOURCE_PRIORITY, collect_opportunities, select_sources
from .store import GrantStore
from .taxonomy import TAXONOMY_VERSION, query_keywords, resolve_tags
from .transport import build_client, to_amount, to_date, to_str

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SearchResult:
    opportunities: list[ScoredOpportunity]
    keywords: list[str]
    sources: list[SourceReport] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "count": len(self.opportunities),
            "keywords_used": list(self.keywords),
            "sources": [report.to_dict() for report in self.sources],
            "errors": list(self.errors),
            "opportunities": [item.to_dict() for item in self.opportunities],
        }


def run_pipeline(
    config: AppConfig,
    store: GrantStore,
    *,
    tags: Iterable[str] | None = None,
    source_names: Iterable[str] | None = None,
    include_historical: bool = False,
    state: str | None = None,
    client: httpx.Client | None = None,
    today: date | None = None,
) -> RunSummary:
    """Discover, score, de-duplicate and import; always writes one run summary."""
    started = time.monotonic()
    deadline = started + config.pipeline.deadline_seconds
    today = today or date.today()
    summary = RunSummary(started_at=datetime.now(timezone.utc), taxonomy_version=TAXONOMY_VERSION)

    try:
        tag_list = resolve_tags(tags)
        scored = _discover(
            config,
            tag_list,
            source_names,
            include_historical,
            state,
            client,
            today,
            deadline,
            summary,
        )
        ranked = dedupe_and_rank(scored, SOURCE_PRIORITY)

        importer = Importer(
            store,
            policy=config.pipeline.existing_policy,
            min_score=config.pipeline.min_score,
            description_max_length=config.pipeline.description_max_length,
        )
        importer.import_all(ranked, summary, deadline)
        summary.urgent_deadlines = _urgent_deadlines(store, today, config, summary)
    except Exception as exc:
        summary.success = False
        summary.errors.append(f"Pipeline failed: {exc}")
        raise
    finally:
        summary.duration_ms = int((time.monotonic() - started) * 1000)
        _write_summary(store, summary)

    logger.info(
        "Discovery complete: discovered=%d imported=%d updated=%d high_priority=%d "
        "errors=%d timed_out=%s duration_ms=%d",
        summary.discovered,
        summary.imported,
        summary.updated,
        summary.high_priority,
        len(summary.errors),
        summary.timed_out,
        summary.duration_ms,
    )
    return summary


def search_opportunities(
    config: AppConfig,
    *,
    tags: Iterable[str] | None = None,
    source_names: Iterable[str] | None = None,
    include_historical: bool = False,
    state: str | None = None,
    client: httpx.Client | None = None,
    today: date | None = None,
) -> SearchResult:
    """Interactive discovery: same sources and taxonomy as the scheduled run, no import."""
    deadline = time.monotonic() + config.pipeline.deadline_seconds
    summary = RunSummary(started_at=datetime.now(timezone.utc), taxonomy_version=TAXONOMY_VERSION)
    tag_list = resolve_tags(tags)
    scored = _discover(
        config,
        tag_list,
        source_names,
        include_historical,
        state,
        client,
        today or date.today(),
        deadline,
        summary,
    )
    ranked = dedupe_and_rank(scored, SOURCE_PRIORITY)
    return SearchResult(
        opportunities=ranked[: config.pipeline.search_result_limit],
        keywords=_keywords(config, tag_list),
        sources=summary.sources,
        errors=summary.errors,
    )


def import_opportunity(
    config: AppConfig,
    store: GrantStore,
    payload: dict[str, Any],
    *,
    tags: Iterable[str] | None = None,
    today: date | None = None,
) -> ImportOutcome:
    """Import one opportunity chosen from a search result, re-scoring it server side."""
    opportunity = opportunity_from_payload(payload)
    scored = score_opportunity(opportunity, tags, today=today)
    importer = Importer(
        store,
        policy=config.pipeline.existing_policy,
        description_max_length=config.pipeline.description_max_length,
    )
    return importer.import_one(scored)


def opportunity_from_payload(payload: dict[str, Any]) -> Opportunity:
    external_id = to_str(payload.get("opportunity_number") or payload.get("id"))
    title = to_str(payload.get("title"))
    if not external_id or not title:
        raise ValueError("opportunity requires an id and a title")
    return Opportunity(
        source=to_str(payload.get("source")) or "manual",
        external_id=external_id,
        title=title,
        agency_name=to_str(payload.get("agency") or payload.get("agency_name")),
        description=to_str(payload.get("description")),
        amount_ceiling=to_amount(payload.get("amount_available")),
        open_date=to_date(payload.get("open_date")),
        close_date=to_date(payload.get("close_date")),
        url=to_str(payload.get("url")),
        category=to_str(payload.get("category")),
        raw=dict(payload),
    )


def _discover(
    config: AppConfig,
    tag_list: list[str],
    source_names: Iterable[str] | None,
    include_historical: bool,
    state: str | None,
    client: httpx.Client | None,
    today: date,
    deadline: float,
    summary: RunSummary,
) -> list[ScoredOpportunity]:
    query = SourceQuery(keywords=_keywords(config, tag_list), state=state)
    sources = select_sources(config, source_names, include_historical)

    owns_client = client is None
    http_client = client or build_client(config)
    try:
        collected = collect_opportunities(config, query, sources, http_client, deadline)
    finally:
        if owns_client:
            http_client.close()

    summary.sources = collected.reports
    summary.errors.extend(collected.errors)
    summary.timed_out = summary.timed_out or collected.timed_out
    summary.discovered = len(collected.opportunities)
    return score_all(collected.opportunities, tag_list, today=today)


def _keywords(config: AppConfig, tag_list: list[str]) -> list[str]:
    return query_keywords(
        tag_list,
        per_tag=config.pipeline.keywords_per_tag,
        limit=config.pipeline.keyword_limit,
    )


def _urgent_deadlines(
    store: GrantStore, today: date, config: AppConfig, summary: RunSummary
) -> list[dict[str, Any]]:
    try:
        rows = store.upcoming_deadlines(today, config.pipeline.urgent_deadline_days)
    except SQLAlchemyError as exc:
        logger.error("Deadline check failed", exc_info=exc)
        summary.errors.append(f"Deadline check: {exc}")
        return []
    return [
        {
            "id": row.id,
            "grant_name": row.grant_name,
            "application_deadline": row.application_deadline.isoformat()
            if row.application_deadline
            else None,
            "priority": row.priority,
        }
        for row in rows
    ]


def _write_summary(store: GrantStore, summary: RunSummary) -> None:
    try:
        store.write_run_summary(summary)
    except SQLAlchemyError as exc:
        logger.error("Failed to persist run summary", exc_info=exc)
        summary.errors.append(f"Run summary not persisted: {exc}")
