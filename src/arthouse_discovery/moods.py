"""
Mood assignment.

Maps derived tags to weighted moods for the discovery engine, and measures
how well a film's moods cover a requested selection.
"""

import logging
from typing import Any, Iterable, Mapping

from .config import UNTAGGED_MOODS
from .film import normalize_moods

logger = logging.getLogger(__name__)

MOODS = (
    'contemplative', 'melancholic', 'dreamlike', 'surreal', 'intimate',
    'existential', 'psychological', 'minimalist', 'slow', 'austere',
    'poetic', 'lyrical', 'enigmatic', 'fragmented', 'bleak',
)

# Tag -> {mood: weight}
TAG_TO_MOOD_MAPPING = {
    'contemplative': {'contemplative': 0.9, 'slow': 0.5, 'existential': 0.3},
    'melancholic': {'melancholic': 0.9, 'intimate': 0.4, 'bleak': 0.3},
    'dreamlike': {'dreamlike': 0.9, 'surreal': 0.6, 'enigmatic': 0.5, 'poetic': 0.4},
    'surreal': {'surreal': 0.9, 'dreamlike': 0.6, 'enigmatic': 0.5},
    'intimate': {'intimate': 0.9, 'psychological': 0.5, 'melancholic': 0.3},
    'existential': {'existential': 0.9, 'contemplative': 0.6, 'bleak': 0.4},
    'psychological': {'psychological': 0.9, 'intimate': 0.5, 'enigmatic': 0.3},
    'minimalist': {'minimalist': 0.9, 'austere': 0.7, 'slow': 0.5},
    'slow': {'slow': 0.9, 'contemplative': 0.6, 'minimalist': 0.4},
    'austere': {'austere': 0.9, 'minimalist': 0.7, 'bleak': 0.4},
    'poetic': {'poetic': 0.9, 'lyrical': 0.7, 'dreamlike': 0.5},
    'lyrical': {'lyrical': 0.9, 'poetic': 0.7, 'intimate': 0.4},
    'enigmatic': {'enigmatic': 0.9, 'surreal': 0.6, 'dreamlike': 0.5},
    'fragmented': {'fragmented': 0.9, 'enigmatic': 0.6, 'psychological': 0.4},
    'bleak': {'bleak': 0.9, 'melancholic': 0.5, 'austere': 0.4},
}


def assign_moods(source: Any) -> dict[str, float]:
    """
    Build a film's mood vector from its derived tags.

    Contributions are summed per mood (capped at 1.0 while accumulating),
    then scaled so the strongest mood is exactly 1.0. Untagged films get
    ``{"contemplative": 0.5}``.

    Args:
        source: Iterable of tags, or a Film / mapping carrying derived tags
    """
    if isinstance(source, Mapping):
        tags = source.get('derived_tags', source.get('derivedTags')) or []
    elif isinstance(source, (str, bytes)):
        tags = [source]
    elif hasattr(source, 'derived_tags'):
        tags = source.derived_tags or []
    else:
        tags = source or []

    # Set membership only: duplicate or reordered tags give the same vector
    tag_set = set(tags)
    if not tag_set:
        return dict(UNTAGGED_MOODS)

    moods: dict[str, float] = {}
    for tag in tag_set:
        mapping = TAG_TO_MOOD_MAPPING.get(tag)
        if not mapping:
            logger.debug(f"Tag '{tag}' has no mood mapping")
            continue
        for mood, weight in mapping.items():
            moods[mood] = min(moods.get(mood, 0.0) + weight, 1.0)

    if not moods:
        return dict(UNTAGGED_MOODS)

    max_weight = max(moods.values())
    return {
        mood: min(round(weight / max_weight, 6), 1.0)
        for mood, weight in sorted(moods.items(), key=lambda kv: MOODS.index(kv[0]))
    }


def mood_match(film_moods: Any, selected_moods: Iterable[str] | None) -> float:
    """
    Average weight of the selected moods on a film, in [0, 1].

    Moods the film lacks count as 0. Returns 0 when either side is empty.
    """
    moods = normalize_moods(film_moods)
    selected = list(selected_moods or [])
    if not moods or not selected:
        return 0.0

    total = sum(moods.get(mood, 0.0) for mood in selected)
    return max(0.0, min(1.0, total / len(selected)))


def available_moods(films: Iterable[Any]) -> list[str]:
    """Sorted union of mood names present across a catalog."""
    found: set[str] = set()
    for film in films:
        raw = film.get('moods') if isinstance(film, Mapping) else getattr(film, 'moods', None)
        found.update(normalize_moods(raw).keys())
    return sorted(found)
