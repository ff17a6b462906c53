from grant_discovery.dedupe import dedupe, dedupe_and_rank, dedupe_key, rank
from grant_discovery.sources import SOURCE_PRIORITY

LONG_TITLE = "Community Wildfire Resilience and Disaster Recovery Program for Rural Counties"


def test_dedupe_key_is_lowercase_fifty_character_prefix():
    assert dedupe_key(LONG_TITLE) == LONG_TITLE.lower()[:50]
    assert dedupe_key(None) == ""


def test_titles_sharing_prefix_collapse_to_one(make_scored):
    first = make_scored(title=LONG_TITLE, external_id="A", source="grants_gov", match_score=40)
    second = make_scored(
        title=LONG_TITLE.upper()[:50] + " (Amended)",
        external_id="B",
        source="nih_reporter",
        match_score=90,
        agency_name="Someone Else",
        description="Entirely different text",
    )

    kept = dedupe([first, second], SOURCE_PRIORITY)

    assert len(kept) == 1


def test_winner_does_not_depend_on_arrival_order(make_scored):
    federal = make_scored(title=LONG_TITLE, external_id="A", source="grants_gov", match_score=40)
    research = make_scored(title=LONG_TITLE, external_id="B", source="nsf_awards", match_score=90)

    forward = dedupe([federal, research], SOURCE_PRIORITY)
    backward = dedupe([research, federal], SOURCE_PRIORITY)

    assert forward == backward
    assert forward[0].opportunity.external_id == "A"


def test_same_source_duplicates_keep_highest_score(make_scored):
    low = make_scored(title=LONG_TITLE, external_id="A", match_score=30)
    high = make_scored(title=LONG_TITLE, external_id="B", match_score=70)

    kept = dedupe([low, high], SOURCE_PRIORITY)

    assert [item.opportunity.external_id for item in kept] == ["B"]


def test_rank_orders_by_score_descending(make_scored):
    items = [
        make_scored(title="Alpha", external_id="1", match_score=20),
        make_scored(title="Bravo", external_id="2", match_score=80),
        make_scored(title="Charlie", external_id="3", match_score=50),
    ]

    ranked = rank(items, SOURCE_PRIORITY)

    assert [item.match_score for item in ranked] == [80, 50, 20]


def test_dedupe_and_rank_combines_both(make_scored):
    items = [
        make_scored(title="Alpha grant", external_id="1", match_score=20),
        make_scored(title="ALPHA GRANT", external_id="2", source="fema", match_score=60),
        make_scored(title="Bravo grant", external_id="3", match_score=40),
    ]

    result = dedupe_and_rank(items, SOURCE_PRIORITY)

    assert [item.opportunity.external_id for item in result] == ["3", "1"]
