"""Heuristic ranking of site search results against a wanted title.

Pure transformation logic: no I/O, no framework dependencies.
Scores are additive integers; only their ordering matters.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

import structlog

from anisource.domain.entities import CandidateMatch, SearchCandidate, ShowType
from anisource.domain.errors import NotFoundError

log = structlog.get_logger(__name__)

# Case-insensitive equality short-circuits to this value, which no
# partial-match score can reach.
EXACT_MATCH_SCORE = 1_000_000

TOKEN_BONUS = 1000
CONTAINS_BONUS = 500
SEASON_MATCH_BONUS = 2000
SEASON_MISMATCH_PENALTY = 800
KEYWORD_BONUS = 400

# "Season 2", "season2" or a standalone "S2" token.
_SEASON_RE = re.compile(r"season\s*(\d+)|\bs(\d+)\b", re.IGNORECASE)

_KEYWORDS = ("arc", "part")


def _season_marker(text: str) -> int | None:
    m = _SEASON_RE.search(text)
    if m is None:
        return None
    return int(m.group(1) or m.group(2))


def score_candidate(name: str, query: str) -> int:
    """Score one candidate *name* against the wanted *query* title."""
    name_l = name.lower()
    query_l = query.lower()

    if name_l == query_l:
        return EXACT_MATCH_SCORE

    tokens = query_l.split()
    score = TOKEN_BONUS * sum(1 for tok in tokens if tok in name_l)

    if query_l in name_l:
        score += CONTAINS_BONUS

    wanted_season = _season_marker(query_l)
    found_season = _season_marker(name_l)
    if wanted_season is not None and found_season is not None:
        if wanted_season == found_season:
            score += SEASON_MATCH_BONUS
        else:
            score -= SEASON_MISMATCH_PENALTY * abs(wanted_season - found_season)

    for keyword in _KEYWORDS:
        if keyword in query_l and keyword in name_l:
            score += KEYWORD_BONUS

    score -= abs(len(name) - len(query))
    return score


def _has_any_token(name: str, query: str) -> bool:
    name_l = name.lower()
    return any(tok in name_l for tok in query.lower().split())


def merge_candidates(batches: Iterable[Iterable[SearchCandidate]]) -> list[SearchCandidate]:
    """Flatten per-variant result lists, keeping the first row per identifier."""
    seen: set[str] = set()
    merged: list[SearchCandidate] = []
    for batch in batches:
        for cand in batch:
            if cand.identifier in seen:
                continue
            seen.add(cand.identifier)
            merged.append(cand)
    return merged


def select_best(
    query: str,
    candidates: Sequence[SearchCandidate],
    expected_type: ShowType | None = None,
) -> CandidateMatch:
    """Pick the highest-scoring candidate for *query*.

    ``expected_type`` is a hard filter applied before scoring; rows whose
    site declares no type pass it.  Ties keep the earliest candidate.

    Raises:
        NotFoundError: no candidates, none of the expected type, or none
            sharing a single token with the query.
    """
    if not candidates:
        raise NotFoundError(f"No candidates found for {query!r}")

    pool = list(candidates)
    if expected_type is not None:
        pool = [
            c for c in pool
            if c.declared_type is None or c.declared_type == expected_type
        ]
        if not pool:
            raise NotFoundError(
                f"No candidates of type {expected_type.value} found for {query!r}"
            )

    pool = [c for c in pool if _has_any_token(c.name, query)]
    if not pool:
        raise NotFoundError(f"No candidate shares a word with {query!r}")

    best: SearchCandidate | None = None
    best_score = 0
    for cand in pool:
        score = score_candidate(cand.name, query)
        if best is None or score > best_score:
            best, best_score = cand, score

    assert best is not None
    log.debug(
        "candidate_selected",
        query=query,
        name=best.name,
        identifier=best.identifier,
        score=best_score,
        considered=len(pool),
    )
    return CandidateMatch(
        source_title=best.name,
        source_identifier=best.identifier,
        score=float(best_score),
        declared_type=best.declared_type,
        url=best.url,
    )
