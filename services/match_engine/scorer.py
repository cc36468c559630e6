# services/match_engine/scorer.py
# Complementary-skills match score between two profiles.

import logging
from typing import Any, Dict, List

from src.models.profile import Profile

logger = logging.getLogger(__name__)

# --- Constants ---

MATCH_KEYWORDS = (
    "team",
    "alone",
    "structure",
    "creative",
    "deadline",
    "planning",
    "spontaneous",
    "focus",
    "social",
)

CATEGORY_BONUS = 10       # per category the first profile has and the second lacks
SHARED_KEYWORD_BONUS = 5  # both profiles mention the keyword
COMPLEMENTARY_KEYWORD_BONUS = 8  # exactly one profile mentions it
MAX_SCORE = 100


def mentioned_keywords(profile: Profile) -> set:
    """Keywords found, case-insensitively, anywhere in the profile's denominators and pattern."""
    text = profile.summary_text().lower()
    return {keyword for keyword in MATCH_KEYWORDS if keyword in text}


def keyword_bonus(first: Profile, second: Profile) -> int:
    """Keyword part of the score. Symmetric in its arguments."""
    first_keywords = mentioned_keywords(first)
    second_keywords = mentioned_keywords(second)
    shared = first_keywords & second_keywords
    complementary = first_keywords ^ second_keywords
    return len(shared) * SHARED_KEYWORD_BONUS + len(complementary) * COMPLEMENTARY_KEYWORD_BONUS


def category_bonus(first: Profile, second: Profile) -> int:
    """
    Category part of the score.

    Only categories present in `first` and absent from `second` count, so the
    result depends on argument order. Callers pass the viewer's own profile
    first to rank everyone else.
    """
    return len(first.categories() - second.categories()) * CATEGORY_BONUS


def explain_match(first: Profile, second: Profile) -> Dict[str, Any]:
    """
    Calculates the match score of `second` as seen from `first`, with a trace
    of how each part of the score was reached.
    """
    first_keywords = mentioned_keywords(first)
    second_keywords = mentioned_keywords(second)
    unique_categories: List[str] = sorted(c.value for c in first.categories() - second.categories())

    cat_bonus = category_bonus(first, second)
    kw_bonus = keyword_bonus(first, second)
    raw_total = cat_bonus + kw_bonus
    final_score = min(MAX_SCORE, raw_total)

    logger.debug(f"Match {first.id} -> {second.id}: category={cat_bonus}, keywords={kw_bonus}, score={final_score}")

    return {
        "score": final_score,
        "trace": {
            "categories_only_in_first": unique_categories,
            "shared_keywords": sorted(first_keywords & second_keywords),
            "complementary_keywords": sorted(first_keywords ^ second_keywords),
            "category_bonus": cat_bonus,
            "keyword_bonus": kw_bonus,
            "raw_total": raw_total,
        },
    }


def score(first: Profile, second: Profile) -> int:
    """Match score in [0, 100]. Not symmetric: see category_bonus."""
    return explain_match(first, second)["score"]
