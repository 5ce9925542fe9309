"""ROASYNC — Entity Matcher.

Heuristic fuzzy matching used for two pairings: Shopify store to Facebook ad
account, and Facebook campaign name to Product name.
"""

import re
from typing import Iterable, Optional, Tuple

from roasync.models.result_models import Confidence, MatchResult

_NON_ALNUM = re.compile(r"[^a-z0-9]")

CHAR_PRESENT_POINTS = 2
POSITION_POINTS = 3
CANDIDATE_CONTAINS_QUERY = 20
QUERY_CONTAINS_CANDIDATE = 15
MAX_FLOOR = 6


def normalize_name(name: Optional[str]) -> str:
    return _NON_ALNUM.sub("", (name or "").lower())


def _score(query: str, candidate: str) -> Tuple[int, bool]:
    """Score two normalized names; also report whether containment applied."""
    score = 0
    for char in query:
        if char in candidate:
            score += CHAR_PRESENT_POINTS
    for a, b in zip(query, candidate):
        if a == b:
            score += POSITION_POINTS

    contained = False
    if query in candidate:
        score += CANDIDATE_CONTAINS_QUERY
        contained = True
    if candidate in query:
        score += QUERY_CONTAINS_CANDIDATE
        contained = True
    return score, contained


def score_candidate(query: str, candidate: str) -> int:
    return _score(normalize_name(query), normalize_name(candidate))[0]


def confidence_floor(normalized_query: str) -> int:
    return min(2 * len(normalized_query), MAX_FLOOR)


def best_match(query: str, candidates: Iterable[Tuple[str, str]]) -> MatchResult:
    """Pick the best ``(id, name)`` candidate for ``query``.

    The strictly highest score wins, so the first seen candidate keeps a tie.
    Below the confidence floor nothing matches.
    """
    normalized_query = normalize_name(query)
    if not normalized_query:
        return MatchResult()

    best_id: Optional[str] = None
    best_score = -1
    best_contained = False
    for candidate_id, candidate_name in candidates:
        normalized = normalize_name(candidate_name)
        if not normalized:
            continue
        score, contained = _score(normalized_query, normalized)
        if score > best_score:
            best_id, best_score, best_contained = candidate_id, score, contained

    if best_id is None or best_score < confidence_floor(normalized_query):
        return MatchResult(score=max(best_score, 0))

    return MatchResult(
        match_id=str(best_id),
        score=best_score,
        confidence=Confidence.HIGH if best_contained else Confidence.LOW,
    )


def best_match_id(query: str, candidates: Iterable[Tuple[str, str]]) -> Optional[str]:
    return best_match(query, candidates).match_id


def match_store_to_ad_account(store_name: str, ad_accounts: Iterable) -> MatchResult:
    """Pair a Shopify store with the most similarly named ad account."""
    return best_match(store_name, ((a.id, a.name) for a in ad_accounts))
