from datetime import date, timedelta

import pytest

from grant_discovery import scorer
from grant_discovery.taxonomy import TAXONOMY

TODAY = date(2026, 10, 1)


@pytest.mark.parametrize("amount", [None, 50_000, 250_000, 750_000, 5_000_000])
@pytest.mark.parametrize("title,description", [("", ""), (None, None), ("", None)])
def test_empty_text_scores_zero_and_keeps_amount_bonus(make_opportunity, title, description, amount):
    opportunity = make_opportunity(
        title=title,
        description=description,
        amount_ceiling=amount,
        close_date=TODAY + timedelta(days=90),
    )

    result = scorer.score_opportunity(opportunity, today=TODAY)

    assert result.match_score == 0
    assert result.matched_tags == []
    assert result.win_probability == scorer.amount_bonus(amount)


def _standalone_keyword(keywords: tuple[str, ...]) -> str:
    # A keyword whose text contains no other keyword of the same tag.
    return next(kw for kw in keywords if scorer.keyword_hits(kw, keywords) == [kw])


@pytest.mark.parametrize("tag", list(TAXONOMY))
def test_tag_matches_at_two_distinct_keywords(make_opportunity, tag):
    keywords = TAXONOMY[tag]
    first = _standalone_keyword(keywords)
    second = next(kw for kw in keywords if kw != first and first not in kw)

    single = scorer.score_opportunity(
        make_opportunity(title=f"{first} {first}", description=first), [tag], today=TODAY
    )
    double = scorer.score_opportunity(
        make_opportunity(title=first, description=second), [tag], today=TODAY
    )

    assert tag not in single.matched_tags
    assert single.match_score == 0
    assert tag in double.matched_tags
    assert double.match_score >= 2 * scorer.KEYWORD_WEIGHT


def test_scoring_is_deterministic(make_opportunity):
    opportunity = make_opportunity(
        title="Rural Telehealth Expansion",
        description="Telemedicine for underserved rural communities",
        amount_ceiling=300_000,
        close_date=TODAY + timedelta(days=60),
    )

    first = scorer.score_opportunity(opportunity, today=TODAY)
    second = scorer.score_opportunity(opportunity, today=TODAY)

    assert first == second


def test_bonuses_for_primary_source_and_open_window(make_opportunity):
    text = {"title": "Rural telehealth pilot", "description": ""}
    base = scorer.score_opportunity(
        make_opportunity(source="nsf_awards", **text), ["rural-health"], today=TODAY
    )
    primary = scorer.score_opportunity(
        make_opportunity(source="grants_gov", **text), ["rural-health"], today=TODAY
    )
    open_window = scorer.score_opportunity(
        make_opportunity(source="grants_gov", close_date=TODAY + timedelta(days=31), **text),
        ["rural-health"],
        today=TODAY,
    )
    closing_soon = scorer.score_opportunity(
        make_opportunity(source="grants_gov", close_date=TODAY + timedelta(days=30), **text),
        ["rural-health"],
        today=TODAY,
    )

    assert base.match_score == 20
    assert primary.match_score == 30
    assert open_window.match_score == 35
    assert closing_soon.match_score == 30


def test_score_is_capped_at_100(make_opportunity):
    keywords = " ".join(TAXONOMY["disaster-relief"])

    result = scorer.score_opportunity(make_opportunity(title=keywords), today=TODAY)

    assert result.match_score == 100
    assert "disaster-relief" in result.matched_tags


def test_substring_matching_hits_inside_longer_words(make_opportunity):
    # "party" contains "art", so two artists-collective keywords are present.
    result = scorer.score_opportunity(
        make_opportunity(title="Creative block party"), ["artists-collective"], today=TODAY
    )

    assert result.matched_tags == ["artists-collective"]


def test_requested_tags_limit_candidates(make_opportunity):
    opportunity = make_opportunity(title="Rural telehealth for veteran military families")

    limited = scorer.score_opportunity(opportunity, ["rural-health"], today=TODAY)
    everything = scorer.score_opportunity(opportunity, today=TODAY)

    assert limited.matched_tags == ["rural-health"]
    assert "veterans-transition" in everything.matched_tags


@pytest.mark.parametrize(
    "amount,bonus",
    [
        (None, 0),
        (0, 0),
        (99_999, 15),
        (100_000, 10),
        (499_999, 10),
        (500_000, 5),
        (999_999, 5),
        (1_000_000, 0),
    ],
)
def test_amount_bonus_steps(amount, bonus):
    assert scorer.amount_bonus(amount) == bonus


def test_win_probability_combines_score_and_amount():
    assert scorer.estimate_win_probability(50, 50_000) == 35
    assert scorer.estimate_win_probability(33, None) == 13
    assert scorer.estimate_win_probability(250, 50_000) == scorer.WIN_PROBABILITY_CAP


def test_disaster_declarations_get_fixed_score(make_opportunity):
    declaration = make_opportunity(
        source="fema",
        title="FEMA DR Disaster Declaration: SEVERE STORMS",
        description="FEMA disaster declaration. Severe Storm in OK. Programs: Public Assistance",
    )

    everything = scorer.score_opportunity(declaration, today=TODAY)
    unrelated = scorer.score_opportunity(declaration, ["rural-health"], today=TODAY)

    assert everything.match_score == scorer.DISASTER_MATCH_SCORE
    assert everything.win_probability == scorer.DISASTER_WIN_PROBABILITY
    assert everything.matched_tags == ["disaster-relief"]
    assert unrelated.match_score == 0
    assert unrelated.matched_tags == []
