"""Keyword scoring against the program taxonomy.

Every function here is pure: the same opportunity, tags, taxonomy and
``today`` always produce the same result. ``win_probability`` is a business
heuristic (smaller awards are assumed to draw less competition); it has not
been validated against real award outcomes.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime

from .models import Opportunity, ScoredOpportunity
from .taxonomy import TAXONOMY, resolve_tags

KEYWORD_WEIGHT = 10
TAG_THRESHOLD = 2
MAX_SCORE = 100
PRIMARY_SOURCE = "grants_gov"
PRIMARY_SOURCE_BONUS = 10
OPEN_WINDOW_DAYS = 30
OPEN_WINDOW_BONUS = 5
WIN_PROBABILITY_CAP = 80

# Disaster declarations are always relevant to disaster relief and carry a fixed score.
DISASTER_SOURCE = "fema"
DISASTER_TAG = "disaster-relief"
DISASTER_MATCH_SCORE = 85
DISASTER_WIN_PROBABILITY = 70

# (exclusive upper bound, bonus); smallest awards first.
AMOUNT_BONUS_STEPS: tuple[tuple[float, int], ...] = (
    (100_000, 15),
    (500_000, 10),
    (1_000_000, 5),
)


def build_text(opportunity: Opportunity) -> str:
    title = opportunity.title if isinstance(opportunity.title, str) else ""
    description = opportunity.description if isinstance(opportunity.description, str) else ""
    return f"{title} {description}".lower()


def keyword_hits(text: str, keywords: Iterable[str]) -> list[str]:
    return [keyword for keyword in keywords if keyword and keyword.lower() in text]


def tag_hits(
    text: str,
    tags: Iterable[str],
    taxonomy: dict[str, tuple[str, ...]] = TAXONOMY,
) -> dict[str, list[str]]:
    return {tag: keyword_hits(text, taxonomy.get(tag, ())) for tag in tags}


def amount_bonus(amount: float | None) -> int:
    if amount is None or amount <= 0:
        return 0
    for ceiling, bonus in AMOUNT_BONUS_STEPS:
        if amount < ceiling:
            return bonus
    return 0


def estimate_win_probability(match_score: int, amount: float | None) -> int:
    probability = match_score * 0.4 + amount_bonus(amount)
    return int(round(min(probability, WIN_PROBABILITY_CAP)))


def score_opportunity(
    opportunity: Opportunity,
    tags: Iterable[str] | None = None,
    *,
    today: date | None = None,
    taxonomy: dict[str, tuple[str, ...]] = TAXONOMY,
) -> ScoredOpportunity:
    today = today or date.today()
    candidates = resolve_tags(tags, taxonomy)
    if opportunity.source == DISASTER_SOURCE and DISASTER_TAG in candidates:
        return ScoredOpportunity(
            opportunity=opportunity,
            match_score=DISASTER_MATCH_SCORE,
            win_probability=DISASTER_WIN_PROBABILITY,
            matched_tags=[DISASTER_TAG],
        )

    text = build_text(opportunity)

    matched_tags: list[str] = []
    score = 0
    for tag, hits in tag_hits(text, candidates, taxonomy).items():
        if len(hits) >= TAG_THRESHOLD:
            matched_tags.append(tag)
            score += len(hits) * KEYWORD_WEIGHT

    # Bonuses only lift opportunities that already match a program.
    if matched_tags:
        if opportunity.source == PRIMARY_SOURCE:
            score += PRIMARY_SOURCE_BONUS
        close_date = opportunity.close_date
        if isinstance(close_date, datetime):
            close_date = close_date.date()
        if isinstance(close_date, date) and (close_date - today).days > OPEN_WINDOW_DAYS:
            score += OPEN_WINDOW_BONUS

    match_score = min(score, MAX_SCORE)
    amount = opportunity.amount_ceiling if isinstance(opportunity.amount_ceiling, (int, float)) else None
    return ScoredOpportunity(
        opportunity=opportunity,
        match_score=match_score,
        win_probability=estimate_win_probability(match_score, amount),
        matched_tags=matched_tags,
    )


def score_all(
    opportunities: Iterable[Opportunity],
    tags: Iterable[str] | None = None,
    *,
    today: date | None = None,
) -> list[ScoredOpportunity]:
    today = today or date.today()
    tags = list(tags) if tags else None
    return [score_opportunity(opportunity, tags, today=today) for opportunity in opportunities]
