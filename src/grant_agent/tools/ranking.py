"""Keyword relevance scoring for funding opportunities."""

from __future__ import annotations

import unicodedata
from collections.abc import Callable, Sequence
from typing import TypeVar

T = TypeVar("T")

TITLE_HIT = 10
DESCRIPTION_HIT = 1
KEYWORD_BONUS = 100
ALL_KEYWORDS_BONUS = 1000
EXPANDED_TITLE_HIT = 3
EXPANDED_KEYWORD_BONUS = 30


def normalize_text(text: str) -> str:
    """Lowercase and strip accents so "Innovación" matches "innovacion"."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def keyword_score(title: str, description: str, keywords: Sequence[str]) -> float:
    """Score one candidate.

    Per keyword: +10 for a title hit, +1 for a description hit, +100 when either
    hits. Matching every keyword of a multi-keyword query adds +1000.
    """
    title_text = normalize_text(title)
    description_text = normalize_text(description)
    score = 0.0
    matched = 0
    for keyword in keywords:
        term = normalize_text(keyword)
        hit = False
        if term in title_text:
            score += TITLE_HIT
            hit = True
        if term in description_text:
            score += DESCRIPTION_HIT
            hit = True
        if hit:
            score += KEYWORD_BONUS
            matched += 1
    if len(keywords) > 1 and matched == len(keywords):
        score += ALL_KEYWORDS_BONUS
    return score


def rank_results(
    items: Sequence[T],
    keywords: Sequence[str],
    *,
    title_of: Callable[[T], str],
    description_of: Callable[[T], str],
) -> list[T]:
    """Drop non-matching items and sort the rest by descending score."""
    scored = [
        (keyword_score(title_of(item), description_of(item), keywords), index, item)
        for index, item in enumerate(items)
    ]
    kept = [entry for entry in scored if entry[0] > 0]
    kept.sort(key=lambda entry: (-entry[0], entry[1]))
    return [item for _, _, item in kept]


def weighted_score(
    title: str,
    description: str,
    primary: Sequence[str],
    expanded: Sequence[str],
) -> float:
    """Score with original/translated keywords weighted above expanded ones.

    Partial coverage of the primary keywords earns a progressive bonus of
    ``round(ratio * 1000)`` instead of the all-or-nothing bonus.
    """
    title_text = normalize_text(title)
    description_text = normalize_text(description)
    primary_terms = list(dict.fromkeys(normalize_text(term) for term in primary))
    expanded_terms = [
        term
        for term in dict.fromkeys(normalize_text(term) for term in expanded)
        if term not in primary_terms
    ]

    score = 0.0
    matched_primary = 0
    for term in primary_terms:
        hit = False
        if term in title_text:
            score += TITLE_HIT
            hit = True
        if term in description_text:
            score += DESCRIPTION_HIT
            hit = True
        if hit:
            score += KEYWORD_BONUS
            matched_primary += 1
    for term in expanded_terms:
        hit = False
        if term in title_text:
            score += EXPANDED_TITLE_HIT
            hit = True
        if term in description_text:
            score += DESCRIPTION_HIT
            hit = True
        if hit:
            score += EXPANDED_KEYWORD_BONUS

    if len(primary_terms) > 1 and matched_primary:
        score += round(matched_primary / len(primary_terms) * ALL_KEYWORDS_BONUS)
    return score


def rank_weighted(
    items: Sequence[T],
    primary: Sequence[str],
    expanded: Sequence[str],
    *,
    title_of: Callable[[T], str],
    description_of: Callable[[T], str],
    short_query_threshold: int = 3,
    query_length: int | None = None,
) -> list[T]:
    """Rank upstream full-text hits.

    ``query_length`` is the number of keywords the user asked for and defaults
    to ``len(primary)``. For short queries (``query_length <= short_query_threshold``)
    nothing is dropped: unmatched items are kept with a floor score of 1.
    Longer queries drop zero-score items.
    """
    length = len(primary) if query_length is None else query_length
    permissive = length <= short_query_threshold
    scored: list[tuple[float, int, T]] = []
    for index, item in enumerate(items):
        score = weighted_score(title_of(item), description_of(item), primary, expanded)
        if score <= 0:
            if not permissive:
                continue
            score = 1.0
        scored.append((score, index, item))
    scored.sort(key=lambda entry: (-entry[0], entry[1]))
    return [item for _, _, item in scored]
