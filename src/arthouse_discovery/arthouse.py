"""
Arthouse scoring.

Estimates how "arthouse" a film is from popularity, vote pattern, genres,
derived tags and country of origin. Score range: 0-100 (higher = more
arthouse).

Genre and tag sub-scores are clamped before summing; popularity and vote
pattern are not. Only the final total is clamped to 0-100.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Mapping

from .film import Film, as_film

ARTHOUSE_COUNTRIES = {
    'France': 15,
    'Italy': 15,
    'Japan': 15,
    'Iran': 15,
    'South Korea': 15,
    'Germany': 12,
    'Russia': 12,
    'Sweden': 12,
    'Poland': 12,
    'United Kingdom': 8,
    'Spain': 10,
    'Taiwan': 12,
    'China': 10,
    'India': 8,
    'Brazil': 10,
    'Mexico': 10,
    'Argentina': 10,
}

US_COUNTRY_NAMES = frozenset({'USA', 'United States', 'United States of America'})
US_COUNTRY_SCORE = -10
OTHER_COUNTRY_SCORE = 8

ARTHOUSE_GENRES = {
    'Drama': 10,
    'Documentary': 8,
    'History': 8,
    'War': 6,
    'Music': 6,
    'Romance': 4,
}

MAINSTREAM_GENRES = {
    'Action': -10,
    'Adventure': -10,
    'Science Fiction': -10,
    'Fantasy': -8,
    'Animation': -5,
    'Comedy': -3,
}

# Common spellings -> canonical genre name used by the tables above
GENRE_SYNONYMS = {
    'sci-fi': 'Science Fiction',
    'scifi': 'Science Fiction',
    'sci fi': 'Science Fiction',
    'science-fiction': 'Science Fiction',
}

GENRE_SCORE_RANGE = (-10, 20)

TAG_SCORES = {
    'contemplative': 5,
    'existential': 5,
    'slow': 5,
    'austere': 5,
    'dreamlike': 3,
    'surreal': 3,
    'enigmatic': 3,
    'psychological': 2,
    'intimate': 2,
    'melancholic': 2,
    'poetic': 4,
    'minimalist': 4,
    'lyrical': 3,
    'fragmented': 3,
}

TAG_SCORE_CAP = 20


@dataclass
class ScoreBreakdown:
    """Per-component arthouse points; ``total`` is the clamped final score."""
    popularity: int = 0
    vote_pattern: int = 0
    genre: int = 0
    tags: int = 0
    country: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def _canonical_genre(genre: str) -> str:
    return GENRE_SYNONYMS.get(genre.strip().lower(), genre.strip())


def popularity_points(popularity: float) -> int:
    # Lower popularity = more arthouse
    if popularity < 20:
        return 25
    if popularity < 50:
        return 15
    if popularity < 100:
        return 5
    return 0


def vote_pattern_points(vote_average: float, vote_count: int) -> int:
    # High quality + niche audience = arthouse; first match wins
    if vote_average >= 7.5 and vote_count < 5000:
        return 20
    if vote_average >= 7.0 and vote_count < 10000:
        return 15
    if vote_average >= 6.5:
        return 10
    if vote_average >= 6.0:
        return 5
    return 0


def genre_points(genres: list[str]) -> int:
    score = 0
    for genre in genres:
        name = _canonical_genre(genre)
        score += ARTHOUSE_GENRES.get(name, 0)
        score += MAINSTREAM_GENRES.get(name, 0)
    low, high = GENRE_SCORE_RANGE
    return max(low, min(high, score))


def tag_points(tags: list[str]) -> int:
    return min(TAG_SCORE_CAP, sum(TAG_SCORES.get(tag, 0) for tag in tags))


def country_points(country: str) -> int:
    country = (country or '').strip()
    if not country:
        return 0
    if country in US_COUNTRY_NAMES:
        return US_COUNTRY_SCORE
    return ARTHOUSE_COUNTRIES.get(country, OTHER_COUNTRY_SCORE)


def _components(film: Film | Mapping[str, Any]) -> tuple[int, int, int, int, int]:
    film = as_film(film)
    return (
        popularity_points(film.popularity),
        vote_pattern_points(film.vote_average, film.vote_count),
        genre_points(film.genres),
        tag_points(film.derived_tags),
        country_points(film.country),
    )


def arthouse_score(film: Film | Mapping[str, Any]) -> int:
    """Arthouse suitability in [0, 100]."""
    return max(0, min(100, sum(_components(film))))


def score_breakdown(film: Film | Mapping[str, Any]) -> ScoreBreakdown:
    """Diagnostic view of ``arthouse_score``; the totals always agree."""
    popularity, vote_pattern, genre, tags, country = _components(film)
    return ScoreBreakdown(
        popularity=popularity,
        vote_pattern=vote_pattern,
        genre=genre,
        tags=tags,
        country=country,
        total=arthouse_score(film),
    )
