"""
Film record used by every scorer.

Records arrive from the store or from JSON dumps in slightly different
shapes (camelCase document fields, snake_case columns, moods as a map or as
a list of pairs). ``Film.from_dict`` absorbs all of them and substitutes
documented defaults for anything missing or malformed.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field, asdict
from typing import Any, Iterable, Mapping

from .config import DEFAULT_DEPTH_SCORE

logger = logging.getLogger(__name__)

# External field name -> Film attribute
_FIELD_ALIASES = {
    '_id': 'id',
    'derivedTags': 'derived_tags',
    'baseCanonScore': 'base_canon_score',
    'arthouseScore': 'arthouse_score',
    'depthScore': 'depth_score',
    'formalInnovation': 'formal_innovation',
    'culturalInfluence': 'cultural_influence',
    'festivalWins': 'festival_wins',
    'showCount': 'show_count',
    'lastShownAt': 'last_shown_at',
    'voteAverage': 'vote_average',
    'voteCount': 'vote_count',
}


def decade_of(year: int) -> int:
    return (int(year) // 10) * 10


def _as_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug(f"Non-numeric value {value!r}, using {default}")
        return default
    if not math.isfinite(number):
        logger.debug(f"Non-finite value {value!r}, using {default}")
        return default
    return number


def _as_int(value: Any, default: int = 0) -> int:
    return int(_as_float(value, default))


def _as_decade(value: Any, year: int) -> int:
    """Stored decade (1970, "1970", "1970s"), or the decade of ``year`` when unusable."""
    if isinstance(value, str):
        value = value.strip().lower().rstrip('s')
    if value in (None, ''):
        return decade_of(year)
    number = _as_float(value, math.nan)
    if math.isnan(number):
        logger.debug(f"Unusable decade {value!r}, deriving from year {year}")
        return decade_of(year)
    return decade_of(int(number))


def _as_str(value: Any) -> str:
    if value is None:
        return ''
    return str(value)


def as_str_list(value: Any) -> list[str]:
    """Coerce a list-ish field (list, tuple, JSON string, bare string) to a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return []
        if stripped.startswith('['):
            try:
                return as_str_list(json.loads(stripped))
            except json.JSONDecodeError:
                logger.debug(f"Failed to parse list field '{stripped[:50]}'")
                return []
        return [stripped]
    if isinstance(value, Iterable) and not isinstance(value, Mapping):
        return [str(v) for v in value if v is not None and str(v) != '']
    return []


def normalize_moods(value: Any) -> dict[str, float]:
    """
    Canonical mood map from any of the stored shapes.

    Accepts a mapping, a list of ``(mood, weight)`` pairs, or a JSON string
    holding either. Entries with a non-numeric weight are dropped.
    """
    if value is None:
        return {}
    if isinstance(value, str):
        if not value.strip():
            return {}
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            logger.debug(f"Failed to parse moods '{value[:50]}'")
            return {}

    if isinstance(value, Mapping):
        pairs = value.items()
    elif isinstance(value, Iterable):
        pairs = []
        for entry in value:
            if isinstance(entry, (list, tuple)) and len(entry) == 2:
                pairs.append((entry[0], entry[1]))
            else:
                logger.debug(f"Skipping malformed mood entry {entry!r}")
    else:
        return {}

    moods: dict[str, float] = {}
    for mood, weight in pairs:
        if mood is None:
            continue
        try:
            number = float(weight)
        except (TypeError, ValueError):
            number = math.nan
        if not math.isfinite(number):
            logger.debug(f"Skipping mood {mood!r} with weight {weight!r}")
            continue
        moods[str(mood)] = number
    return moods


@dataclass
class Film:
    """A catalog film plus the fields cached on it by the scorers."""
    id: str
    title: str = ''
    year: int = 0
    decade: int = 0

    synopsis: str = ''
    keywords: list[str] = field(default_factory=list)
    genres: list[str] = field(default_factory=list)
    country: str = ''
    directors: list[str] = field(default_factory=list)

    popularity: float = 0.0
    vote_average: float = 0.0
    vote_count: int = 0
    tier: int = 3

    # Written by enrichment, read by ranking
    derived_tags: list[str] = field(default_factory=list)
    moods: dict[str, float] = field(default_factory=dict)
    base_canon_score: int = 0
    arthouse_score: int = 0
    depth_score: float = DEFAULT_DEPTH_SCORE
    formal_innovation: float = 0.0
    cultural_influence: float = 0.0
    festival_wins: list[str] = field(default_factory=list)
    movements: list[str] = field(default_factory=list)
    show_count: int = 0
    last_shown_at: str | None = None

    @property
    def primary_director(self) -> str | None:
        return self.directors[0] if self.directors else None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Film":
        data = {_FIELD_ALIASES.get(k, k): v for k, v in payload.items()}

        year = _as_int(data.get('year'))
        return cls(
            id=_as_str(data.get('id') or data.get('slug') or data.get('tmdb_id') or data.get('title')),
            title=_as_str(data.get('title')),
            year=year,
            decade=_as_decade(data.get('decade'), year),
            synopsis=_as_str(data.get('synopsis')),
            keywords=as_str_list(data.get('keywords')),
            genres=as_str_list(data.get('genres')),
            country=_as_str(data.get('country')).strip(),
            directors=as_str_list(data.get('directors')),
            popularity=_as_float(data.get('popularity')),
            vote_average=_as_float(data.get('vote_average')),
            vote_count=_as_int(data.get('vote_count')),
            tier=_as_int(data.get('tier'), 3),
            derived_tags=as_str_list(data.get('derived_tags')),
            moods=normalize_moods(data.get('moods')),
            base_canon_score=_as_int(data.get('base_canon_score')),
            arthouse_score=_as_int(data.get('arthouse_score')),
            depth_score=_as_float(data.get('depth_score'), DEFAULT_DEPTH_SCORE),
            formal_innovation=_as_float(data.get('formal_innovation')),
            cultural_influence=_as_float(data.get('cultural_influence')),
            festival_wins=as_str_list(data.get('festival_wins')),
            movements=as_str_list(data.get('movements')),
            show_count=max(0, _as_int(data.get('show_count'))),
            last_shown_at=_as_str(data.get('last_shown_at')) or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def as_film(record: "Film | Mapping[str, Any]") -> Film:
    """Return ``record`` unchanged if it is a Film, otherwise parse it."""
    if isinstance(record, Film):
        return record
    return Film.from_dict(record)
