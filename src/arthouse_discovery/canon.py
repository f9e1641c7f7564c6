"""
Base canon score calculation.

BaseCanonScore = 0.35*CriticalConsensus + 0.25*HistoricalImportance +
                 0.20*AuteurImportance + 0.10*FormalInnovation + 0.10*CulturalInfluence

Each component is on a 0-100 scale. Formal innovation and cultural influence
may be pre-populated on the record by editorial curation; a non-zero stored
value wins over the heuristic.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping

from .config import CANON_REFERENCE_YEAR, CANON_WEIGHTS, CONSENSUS_FULL_CONFIDENCE_VOTES
from .film import Film, as_film

logger = logging.getLogger(__name__)

# Matched as substrings of the primary director's name
MASTER_AUTEURS = (
    'Robert Bresson', 'Andrei Tarkovsky', 'Carl Theodor Dreyer', 'Yasujirō Ozu',
    'Ingmar Bergman', 'Akira Kurosawa', 'Jean-Luc Godard', 'François Truffaut',
    'Michelangelo Antonioni', 'Federico Fellini', 'Luis Buñuel', 'Orson Welles',
    'Stanley Kubrick', 'Terrence Malick', 'Béla Tarr',
    'Abbas Kiarostami', 'Wong Kar-wai', 'Edward Yang', 'Hou Hsiao-hsien',
    'Krzysztof Kieślowski', 'Jean-Pierre Melville', 'Chris Marker', 'Chantal Akerman',
)

ESTABLISHED_AUTEURS = (
    'David Lynch', 'Pedro Almodóvar', 'Wes Anderson', 'Paul Thomas Anderson',
    'Dardenne', 'Michael Haneke', 'Claire Denis', 'Apichatpong Weerasethakul',
    'Jafar Panahi', 'Kelly Reichardt', 'Carlos Reygadas', 'Lucrecia Martel',
    'Pedro Costa', 'Tsai Ming-liang', 'Nuri Bilge Ceylan', 'Aki Kaurismäki',
)

AUTEUR_SCORES = {
    'master': 100,
    'established': 75,
    'unknown': 50,
    'missing': 25,
}

TIER_HISTORICAL_BASE = {1: 70, 2: 50}
DEFAULT_HISTORICAL_BASE = 30

# (minimum age exclusive, bonus), checked in order
AGE_BONUSES = ((70, 20), (50, 15), (30, 10), (10, 5))

FESTIVAL_WIN_POINTS = 5
FESTIVAL_WIN_CAP = 10

INNOVATIVE_TAGS = frozenset({'surreal', 'enigmatic', 'fragmented', 'dreamlike', 'minimalist'})
INNOVATIVE_TAG_POINTS = 15
EARLY_CINEMA_YEAR = 1940
EARLY_CINEMA_POINTS = 20
MODERN_DOCUMENTARY_YEAR = 1960
MODERN_DOCUMENTARY_POINTS = 10

# (vote count exclusive threshold, points), checked in order
VOTE_REACH_POINTS = ((10000, 30), (5000, 20), (1000, 10))
TIER_INFLUENCE_POINTS = {1: 40, 2: 20}


def critical_consensus(film: Film) -> float:
    """Rating on a 0-100 scale, discounted when few people voted."""
    vote_score = film.vote_average * 10
    count_weight = min(film.vote_count / CONSENSUS_FULL_CONFIDENCE_VOTES, 1)
    return vote_score * (0.7 + 0.3 * count_weight)


def historical_importance(film: Film, reference_year: int = CANON_REFERENCE_YEAR) -> float:
    score = TIER_HISTORICAL_BASE.get(film.tier, DEFAULT_HISTORICAL_BASE)

    # Older films are more often historically significant
    age = reference_year - film.year
    for min_age, bonus in AGE_BONUSES:
        if age > min_age:
            score += bonus
            break

    if film.festival_wins:
        score += min(len(film.festival_wins) * FESTIVAL_WIN_POINTS, FESTIVAL_WIN_CAP)

    return min(score, 100)


def auteur_importance(film: Film) -> float:
    director = film.primary_director
    if not director:
        return AUTEUR_SCORES['missing']

    if any(master in director for master in MASTER_AUTEURS):
        return AUTEUR_SCORES['master']
    if any(established in director for established in ESTABLISHED_AUTEURS):
        return AUTEUR_SCORES['established']
    return AUTEUR_SCORES['unknown']


def formal_innovation(film: Film) -> float:
    matched = [tag for tag in film.derived_tags if tag in INNOVATIVE_TAGS]
    score = len(matched) * INNOVATIVE_TAG_POINTS

    # Very early cinema is experimental by nature
    if film.year < EARLY_CINEMA_YEAR:
        score += EARLY_CINEMA_POINTS

    if 'Documentary' in film.genres and film.year > MODERN_DOCUMENTARY_YEAR:
        score += MODERN_DOCUMENTARY_POINTS

    return min(score, 100)


def cultural_influence(film: Film) -> float:
    score = 0
    for threshold, points in VOTE_REACH_POINTS:
        if film.vote_count > threshold:
            score += points
            break

    score += TIER_INFLUENCE_POINTS.get(film.tier, 0)

    # Recent and well rated: contemporary influence
    if film.year > 2010 and film.vote_average > 7.5:
        score += 20

    # Old and still well rated: lasting influence
    if film.year < 1980 and film.vote_average > 7.0:
        score += 30

    return min(score, 100)


def canon_components(
    film: Film | Mapping[str, Any],
    reference_year: int = CANON_REFERENCE_YEAR,
) -> dict[str, float]:
    """The five weighted inputs of the base canon score, keyed as in CANON_WEIGHTS."""
    film = as_film(film)
    return {
        'critical_consensus': critical_consensus(film),
        'historical_importance': historical_importance(film, reference_year),
        'auteur_importance': auteur_importance(film),
        'formal_innovation': film.formal_innovation or formal_innovation(film),
        'cultural_influence': film.cultural_influence or cultural_influence(film),
    }


def base_canon_score(
    film: Film | Mapping[str, Any],
    reference_year: int = CANON_REFERENCE_YEAR,
) -> int:
    """
    Composite canonical importance of a film, as an integer in [0, 100].

    Args:
        film: Film or raw record
        reference_year: Year treated as "now" for the age bonus
    """
    components = canon_components(film, reference_year)
    score = sum(CANON_WEIGHTS[name] * value for name, value in components.items())
    # Halves round up
    return int(math.floor(max(0.0, min(score, 100.0)) + 0.5))
