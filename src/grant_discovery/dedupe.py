from __future__ import annotations

from collections.abc import Iterable, Mapping

from .models import ScoredOpportunity

KEY_LENGTH = 50


def dedupe_key(title: str | None) -> str:
    return (title or "").lower()[:KEY_LENGTH]


def stable_order(
    scored: Iterable[ScoredOpportunity], priority: Mapping[str, int]
) -> list[ScoredOpportunity]:
    """Total order: title key, source priority, score descending, external id."""
    fallback = len(priority)
    return sorted(
        scored,
        key=lambda item: (
            dedupe_key(item.opportunity.title),
            priority.get(item.opportunity.source, fallback),
            -item.match_score,
            item.opportunity.external_id,
        ),
    )


def dedupe(
    scored: Iterable[ScoredOpportunity], priority: Mapping[str, int]
) -> list[ScoredOpportunity]:
    seen: set[str] = set()
    kept: list[ScoredOpportunity] = []
    for item in stable_order(scored, priority):
        key = dedupe_key(item.opportunity.title)
        if key in seen:
            continue
        seen.add(key)
        kept.append(item)
    return kept


def rank(
    scored: Iterable[ScoredOpportunity], priority: Mapping[str, int]
) -> list[ScoredOpportunity]:
    fallback = len(priority)
    return sorted(
        scored,
        key=lambda item: (
            -item.match_score,
            priority.get(item.opportunity.source, fallback),
            dedupe_key(item.opportunity.title),
        ),
    )


def dedupe_and_rank(
    scored: Iterable[ScoredOpportunity], priority: Mapping[str, int]
) -> list[ScoredOpportunity]:
    return rank(dedupe(scored, priority), priority)
