from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from .config import EXISTING_POLICIES
from .models import GrantRecord, RunSummary, ScoredOpportunity
from .store import GrantOpportunity, GrantStore

logger = logging.getLogger(__name__)

INITIAL_STATUS = "researching"
PRIORITY_BANDS: tuple[tuple[int, str], ...] = (
    (80, "critical"),
    (60, "high"),
    (40, "medium"),
)
HIGH_PRIORITIES = {"critical", "high"}

# Fields an update or merge may touch; status and the key stay as first imported.
_DISCOVERY_FIELDS = (
    "grant_name",
    "agency_name",
    "description",
    "amount_available",
    "application_opens",
    "application_deadline",
    "target_modules",
    "match_score",
    "win_probability",
    "priority",
    "website_url",
    "discovery_source",
)


def priority_for(score: int) -> str:
    for floor, priority in PRIORITY_BANDS:
        if score >= floor:
            return priority
    return "low"


def to_record(scored: ScoredOpportunity, description_max_length: int = 5000) -> GrantRecord:
    opp = scored.opportunity
    description = opp.description[:description_max_length] if opp.description else None
    return GrantRecord(
        grant_name=opp.title,
        opportunity_number=opp.external_id,
        agency_name=opp.agency_name,
        description=description,
        amount_available=opp.amount_ceiling,
        application_opens=opp.open_date,
        application_deadline=opp.close_date,
        status=INITIAL_STATUS,
        priority=priority_for(scored.match_score),
        target_modules=list(scored.matched_tags),
        match_score=scored.match_score,
        win_probability=scored.win_probability,
        website_url=opp.url,
        discovery_source=opp.source,
    )


@dataclass(slots=True)
class ImportOutcome:
    action: str
    opportunity_number: str
    priority: str | None = None
    existing_id: int | None = None


class Importer:
    def __init__(
        self,
        store: GrantStore,
        policy: str = "skip",
        min_score: int = 0,
        description_max_length: int = 5000,
    ) -> None:
        if policy not in EXISTING_POLICIES:
            raise ValueError(f"Unknown existing-record policy: {policy!r}")
        self.store = store
        self.policy = policy
        self.min_score = min_score
        self.description_max_length = description_max_length

    def import_one(self, scored: ScoredOpportunity) -> ImportOutcome:
        record = to_record(scored, self.description_max_length)
        number = record.opportunity_number

        existing = self.store.get(number)
        if existing is None:
            row = self.store.insert(record)
            if row is None:
                # Another run inserted the same key after our lookup.
                return ImportOutcome("skipped", number)
            return ImportOutcome("imported", number, priority=record.priority, existing_id=row.id)

        if self.policy == "skip":
            return ImportOutcome("skipped", number, existing_id=existing.id)

        values = (
            _update_values(record) if self.policy == "update" else _merge_values(existing, record)
        )
        changes = {
            key: value for key, value in values.items() if getattr(existing, key) != value
        }
        if not changes:
            return ImportOutcome("skipped", number, existing_id=existing.id)
        self.store.update(number, changes)
        return ImportOutcome("updated", number, existing_id=existing.id)

    def import_all(
        self,
        scored: list[ScoredOpportunity],
        summary: RunSummary,
        deadline: float | None = None,
    ) -> None:
        """Import record by record; failures are logged into ``summary`` and never abort."""
        for idx, item in enumerate(scored):
            if deadline is not None and time.monotonic() >= deadline:
                summary.timed_out = True
                summary.errors.append(
                    f"Import stopped at deadline; {len(scored) - idx} records not processed"
                )
                logger.warning("Import loop hit the run deadline")
                return
            if item.match_score < self.min_score:
                continue

            opp = item.opportunity
            try:
                outcome = self.import_one(item)
            except SQLAlchemyError as exc:
                logger.error("Failed to import %s %s", opp.source, opp.external_id, exc_info=exc)
                summary.errors.append(f"{opp.source} {opp.external_id}: {exc}")
                continue

            if outcome.action == "imported":
                summary.imported += 1
                if outcome.priority in HIGH_PRIORITIES:
                    summary.high_priority += 1
            elif outcome.action == "updated":
                summary.updated += 1
            else:
                summary.skipped += 1


def _update_values(record: GrantRecord) -> dict[str, Any]:
    values = asdict(record)
    return {key: values[key] for key in _DISCOVERY_FIELDS}


def _merge_values(existing: GrantOpportunity, record: GrantRecord) -> dict[str, Any]:
    incoming = asdict(record)
    merged: dict[str, Any] = {}
    for key in _DISCOVERY_FIELDS:
        current = getattr(existing, key)
        merged[key] = incoming[key] if current in (None, "", []) else current

    modules = list(existing.target_modules or [])
    modules.extend(tag for tag in record.target_modules if tag not in modules)
    merged["target_modules"] = modules
    merged["match_score"] = max(existing.match_score or 0, record.match_score)
    merged["win_probability"] = max(existing.win_probability or 0, record.win_probability)
    merged["priority"] = priority_for(merged["match_score"])
    return merged
