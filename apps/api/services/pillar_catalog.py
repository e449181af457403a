"""
Pillar Catalog

The fixed set of development pillars and the score dimensions each one is
assessed on. Assessment score bags are validated against this catalog at
the record-store boundary, so downstream code only sees known dimensions
with numeric values on the 0-10 scale.
"""

from typing import Dict, List, Mapping, Optional, Tuple
import logging
import math

logger = logging.getLogger(__name__)


SCORE_MIN = 0.0
SCORE_MAX = 10.0

# Catalog order is display order.
PILLAR_DIMENSIONS: Dict[str, Tuple[str, ...]] = {
    "self_care": (
        "sleep_quality",
        "stress_level",
        "exercise_frequency",
        "nutrition_quality",
        "work_life_balance",
    ),
    "skills": (
        "skill_training_regularity",
        "feedback_quality",
        "technical_improvement_time",
        "development_feeling",
        "skill_improvement_needs",
    ),
    "talent": (
        "drive_and_focus",
        "creativity_ideas",
        "idea_to_action",
        "unique_voice",
        "creativity_usage",
    ),
    "brand": (
        "brand_clarity",
        "platform_messaging",
        "message_reach",
        "credibility",
        "brand_aspiration",
    ),
    "economy": (
        "financial_security",
        "clear_income_sources",
        "new_income_opportunities",
        "cost_control",
        "economic_improvement_ideas",
    ),
}

PILLAR_KEYS: Tuple[str, ...] = tuple(PILLAR_DIMENSIONS)

PILLAR_DISPLAY_NAMES = {
    "self_care": "Self Care",
    "skills": "Skills",
    "talent": "Talent",
    "brand": "Brand",
    "economy": "Economy",
}


def is_known_pillar(pillar_key: Optional[str]) -> bool:
    return pillar_key in PILLAR_DIMENSIONS


def format_pillar(pillar_key: str) -> str:
    """Human-readable pillar name."""
    return PILLAR_DISPLAY_NAMES.get(pillar_key, pillar_key.replace("_", " ").title())


def is_score_value(value) -> bool:
    """True for a finite real number (bools are not scores)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def validate_scores(pillar_key: str, raw_scores) -> Dict[str, float]:
    """
    Keep only catalog dimensions of `pillar_key` with numeric in-range values.

    Returns an empty dict for an unknown pillar or a non-mapping score bag.
    Every dropped entry is logged so bad rows can be traced.
    """
    dimensions = PILLAR_DIMENSIONS.get(pillar_key)
    if dimensions is None or not isinstance(raw_scores, Mapping):
        return {}

    clean: Dict[str, float] = {}
    for key, value in raw_scores.items():
        if key not in dimensions:
            logger.warning(f"Dropping unknown dimension '{key}' for pillar {pillar_key}")
            continue
        if not is_score_value(value):
            logger.warning(f"Dropping non-numeric score {key}={value!r} for pillar {pillar_key}")
            continue
        if not SCORE_MIN <= value <= SCORE_MAX:
            logger.warning(f"Dropping out-of-range score {key}={value} for pillar {pillar_key}")
            continue
        clean[key] = float(value)
    return clean


def pillar_score(scores: Mapping) -> Optional[float]:
    """
    Unweighted mean of the numeric values in a score bag.

    Non-numeric values are ignored. Returns None when nothing numeric remains,
    which callers treat as "no calculated score".
    """
    if not isinstance(scores, Mapping):
        return None
    values: List[float] = [float(v) for v in scores.values() if is_score_value(v)]
    if not values:
        return None
    return sum(values) / len(values)
