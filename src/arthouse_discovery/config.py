"""
Configuration constants for the arthouse discovery system.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


# Database Configuration
DB_PATH = Path(os.environ.get("ARTHOUSE_DB", "data/arthouse.db"))

# Canon scoring: the year treated as "now" when computing film age.
# Scores drift as real time advances unless films are re-migrated.
CANON_REFERENCE_YEAR = _get_int_env("ARTHOUSE_REFERENCE_YEAR", 2025, min_val=1888)

# Recency ramp: 0 at/before start, 100 at/after end
RECENCY_START_YEAR = _get_int_env("ARTHOUSE_RECENCY_START", 2015, min_val=1888)
RECENCY_END_YEAR = _get_int_env("ARTHOUSE_RECENCY_END", 2025, min_val=1888)
if RECENCY_END_YEAR <= RECENCY_START_YEAR:
    logger.warning(
        f"ARTHOUSE_RECENCY_END={RECENCY_END_YEAR} must be after start {RECENCY_START_YEAR}, using defaults"
    )
    RECENCY_START_YEAR, RECENCY_END_YEAR = 2015, 2025

# Rotation noise spans [-ROTATION_NOISE_SPAN / 2, +ROTATION_NOISE_SPAN / 2]
ROTATION_NOISE_SPAN = 6.0

# Mood and combined contexts drop anything scoring below this
MIN_CONTEXT_SCORE = _get_float_env("ARTHOUSE_MIN_CONTEXT_SCORE", 30.0, min_val=0.0)

# Pagination
DEFAULT_PAGE_LIMIT = _get_int_env("ARTHOUSE_PAGE_LIMIT", 60, min_val=1)

# Defaults applied to cached fields the ranking reads
DEFAULT_DEPTH_SCORE = 50
UNTAGGED_MOODS = {"contemplative": 0.5}

# Tag classifier
MAX_DERIVED_TAGS = 5

# Pruning: tier 3 films below this arthouse score are removed
ARTHOUSE_PRUNE_THRESHOLD = _get_int_env("ARTHOUSE_PRUNE_THRESHOLD", 60, min_val=0)
PRESERVED_TIERS = (1, 2)

# Background show-count bumps
IMPRESSION_WORKERS = _get_int_env("ARTHOUSE_IMPRESSION_WORKERS", 2, min_val=1)

# Batch Processing
EXPORT_CHUNK_SIZE = 500
IMPORT_CHUNK_SIZE = 500

# Base canon score composition
CANON_WEIGHTS = {
    'critical_consensus': 0.35,
    'historical_importance': 0.25,
    'auteur_importance': 0.20,
    'formal_innovation': 0.10,
    'cultural_influence': 0.10,
}

# Critical consensus: vote counts at or above this are fully trusted
CONSENSUS_FULL_CONFIDENCE_VOTES = 5000

# Discovery context weights
EXPLORE_WEIGHTS = {
    'canon': 0.60,
    'recency': 0.20,
    'rarity': 0.10,
    'rotation': 0.10,
}

DECADE_WEIGHTS = {
    'canon': 0.70,
    'influence': 0.20,
    'movement': 0.10,
}

MOOD_WEIGHTS = {
    'mood_match': 0.50,
    'canon': 0.30,
    'depth': 0.10,
    'rarity': 0.10,
}

COMBINED_WEIGHTS = {
    'mood_match': 0.40,
    'canon': 0.40,
    'period': 0.10,
    'rarity': 0.10,
}

# "new" sort: extra points per festival win
FESTIVAL_WIN_SORT_BONUS = 5
