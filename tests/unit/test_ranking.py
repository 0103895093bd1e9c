from grant_agent.tools.ranking import (
    keyword_score,
    normalize_text,
    rank_results,
    rank_weighted,
    weighted_score,
)


def _rank(items: list[dict[str, str]], keywords: list[str]) -> list[dict[str, str]]:
    return rank_results(
        items,
        keywords,
        title_of=lambda item: item["title"],
        description_of=lambda item: item["description"],
    )


def test_normalize_text_strips_accents() -> None:
    assert normalize_text("Innovación Tecnológica") == "innovacion tecnologica"


def test_keyword_score_rewards_full_coverage() -> None:
    assert keyword_score("Blockchain payments", "fintech pilots", ["blockchain", "fintech"]) == 1211
    assert keyword_score("Blockchain payments", "", ["blockchain", "fintech"]) == 110
    assert keyword_score("Blockchain", "", ["blockchain"]) == 110


def test_rank_results_drops_misses_and_keeps_ties_stable() -> None:
    items = [
        {"title": "Housing aid", "description": "rent"},
        {"title": "Industry 4.0", "description": "digital industria"},
        {"title": "Industria verde", "description": ""},
        {"title": "Industria naval", "description": ""},
    ]

    ranked = _rank(items, ["industria"])

    assert [item["title"] for item in ranked] == ["Industria verde", "Industria naval", "Industry 4.0"]


def test_weighted_score_gives_progressive_bonus() -> None:
    score = weighted_score("Blockchain call", "", ["blockchain", "fintech"], ["ledger"])

    assert score == 10 + 100 + 500


def test_expanded_terms_weigh_less_than_primary() -> None:
    primary = weighted_score("Fintech call", "", ["fintech"], ["ledger"])
    expanded = weighted_score("Ledger call", "", ["fintech"], ["ledger"])

    assert primary > expanded > 0


def test_short_queries_keep_unmatched_items_last() -> None:
    items = [
        {"title": "Unrelated", "description": ""},
        {"title": "Blockchain pilots", "description": ""},
    ]

    ranked = rank_weighted(
        items,
        ["blockchain"],
        [],
        title_of=lambda item: item["title"],
        description_of=lambda item: item["description"],
    )

    assert [item["title"] for item in ranked] == ["Blockchain pilots", "Unrelated"]


def test_long_queries_drop_unmatched_items() -> None:
    items = [
        {"title": "Unrelated", "description": ""},
        {"title": "Blockchain pilots", "description": ""},
    ]

    ranked = rank_weighted(
        items,
        ["blockchain", "fintech", "payments", "ledger"],
        [],
        title_of=lambda item: item["title"],
        description_of=lambda item: item["description"],
    )

    assert [item["title"] for item in ranked] == ["Blockchain pilots"]
