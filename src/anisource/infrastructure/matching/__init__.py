from .candidate_scorer import (
    EXACT_MATCH_SCORE,
    merge_candidates,
    score_candidate,
    select_best,
)
from .titles import clean_search_title, normalize_title, slugify, title_variants

__all__ = [
    "EXACT_MATCH_SCORE",
    "clean_search_title",
    "merge_candidates",
    "normalize_title",
    "score_candidate",
    "select_best",
    "slugify",
    "title_variants",
]
