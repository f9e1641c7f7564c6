"""
Discovery engine.

Ranks an already-fetched candidate set for four browsing contexts:

    ExploreScore  = 0.60*BaseCanon + 0.20*Recency + 0.10*Rarity + 0.10*RotationNoise
    DecadeScore   = 0.70*BaseCanon + 0.20*InfluenceWithinDecade + 0.10*MovementBonus
    MoodScore     = 0.50*MoodMatch*100 + 0.30*BaseCanon + 0.10*Depth + 0.10*Rarity
    CombinedScore = 0.40*MoodMatch*100 + 0.40*BaseCanon + 0.10*PeriodAuthenticity + 0.10*Rarity

Scoring is pure. The only time-dependent input is the rotation noise, which
is seeded by the UTC calendar day and the film id, so a film keeps the same
perturbation for a whole day and gets an unrelated one the next.
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Sequence

import numpy as np

from .config import (
    COMBINED_WEIGHTS,
    DECADE_WEIGHTS,
    DEFAULT_PAGE_LIMIT,
    EXPLORE_WEIGHTS,
    FESTIVAL_WIN_SORT_BONUS,
    MIN_CONTEXT_SCORE,
    MOOD_WEIGHTS,
    RECENCY_END_YEAR,
    RECENCY_START_YEAR,
    ROTATION_NOISE_SPAN,
)
from .film import Film, as_film, decade_of
from .moods import mood_match

logger = logging.getLogger(__name__)


class InvalidRequest(ValueError):
    """A discovery request is missing or has malformed parameters."""


class SortOption(str, Enum):
    CURATED = 'curated'        # ExploreScore
    INFLUENCE = 'influence'    # BaseCanonScore
    HIDDEN_GEMS = 'gems'       # RarityBoost
    NEW_NOTABLE = 'new'        # RecencyBoost + festival wins

    @classmethod
    def parse(cls, value: "str | SortOption | None") -> "SortOption":
        """Unknown or empty keywords fall back to CURATED."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or cls.CURATED.value).strip().lower())
        except ValueError:
            logger.warning(f"Unknown sort option '{value}', using curated")
            return cls.CURATED


def deterministic_random(seed: str) -> float:
    """Uniform float in [0, 1) reproducible from ``seed`` in any process."""
    digest = hashlib.sha256(seed.encode('utf-8')).digest()
    rng = np.random.default_rng(int.from_bytes(digest[:8], 'big'))
    return float(rng.random())


def today_seed(now: datetime | None = None) -> str:
    """ISO date (YYYY-MM-DD) of the UTC calendar day."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.date().isoformat()


def rotation_noise(seed: str) -> float:
    """Reproducible noise in [-3, 3) for a seed string."""
    return deterministic_random(seed) * ROTATION_NOISE_SPAN - ROTATION_NOISE_SPAN / 2


def recency_boost(
    year: int,
    start_year: int = RECENCY_START_YEAR,
    end_year: int = RECENCY_END_YEAR,
) -> float:
    """Linear ramp: 0 at or before ``start_year``, 100 at or after ``end_year``."""
    score = 100 * (year - start_year) / (end_year - start_year)
    return max(0.0, min(100.0, score))


def rarity_boost(show_count: int) -> float:
    """Films shown less often get a larger boost; never-shown films get 100."""
    show_count = max(0, show_count or 0)
    score = 100 / math.log(show_count + 2)
    return max(0.0, min(100.0, score))


def explore_score(film: Film | Mapping[str, Any], seed: str | None = None) -> float:
    """
    Default ordering score for the full catalog.

    Args:
        film: Film or raw record
        seed: Day string for the rotation noise; defaults to today (UTC)
    """
    film = as_film(film)
    day = seed if seed is not None else today_seed()
    w = EXPLORE_WEIGHTS
    return (
        w['canon'] * film.base_canon_score
        + w['recency'] * recency_boost(film.year)
        + w['rarity'] * rarity_boost(film.show_count)
        + w['rotation'] * rotation_noise(day + film.id)
    )


def _max_canon(films: Iterable[Film]) -> float:
    return max([f.base_canon_score for f in films] + [1])


def influence_within_decade(film: Film, decade_films: Iterable[Film | Mapping[str, Any]]) -> float:
    """A film's canon score relative to the best in its decade, on 0-100."""
    film = as_film(film)
    return film.base_canon_score / _max_canon(as_film(f) for f in decade_films) * 100


def decade_score(
    film: Film | Mapping[str, Any],
    decade_films: Iterable[Film | Mapping[str, Any]] = (),
    max_in_decade: float | None = None,
) -> float:
    """
    Score within a single decade.

    Args:
        film: Film or raw record
        decade_films: All candidates from the same decade (the film included)
        max_in_decade: Precomputed best canon score for the decade; skips
            scanning ``decade_films`` when ranking a whole decade at once
    """
    film = as_film(film)
    if max_in_decade is None:
        max_in_decade = _max_canon(as_film(f) for f in decade_films)
    influence = film.base_canon_score / max(max_in_decade, 1) * 100
    movement_bonus = 100 if film.movements else 50
    w = DECADE_WEIGHTS
    return (
        w['canon'] * film.base_canon_score
        + w['influence'] * influence
        + w['movement'] * movement_bonus
    )


def mood_score(film: Film | Mapping[str, Any], selected_moods: Sequence[str]) -> float:
    film = as_film(film)
    match = mood_match(film.moods, selected_moods)
    w = MOOD_WEIGHTS
    return (
        w['mood_match'] * (match * 100)
        + w['canon'] * film.base_canon_score
        + w['depth'] * film.depth_score
        + w['rarity'] * rarity_boost(film.show_count)
    )


def combined_score(film: Film | Mapping[str, Any], selected_moods: Sequence[str], decade: int) -> float:
    film = as_film(film)
    match = mood_match(film.moods, selected_moods)
    period_authenticity = 100 if decade_of(film.year) == decade else 50
    w = COMBINED_WEIGHTS
    return (
        w['mood_match'] * (match * 100)
        + w['canon'] * film.base_canon_score
        + w['period'] * period_authenticity
        + w['rarity'] * rarity_boost(film.show_count)
    )


def new_notable_score(film: Film) -> float:
    return recency_boost(film.year) + FESTIVAL_WIN_SORT_BONUS * len(film.festival_wins)


def sort_scores(films: Sequence[Film], sort_by: SortOption, seed: str | None = None) -> list[float]:
    """Per-film sort key for an explore sort option (higher ranks first)."""
    if sort_by is SortOption.INFLUENCE:
        return [float(f.base_canon_score) for f in films]
    if sort_by is SortOption.HIDDEN_GEMS:
        return [rarity_boost(f.show_count) for f in films]
    if sort_by is SortOption.NEW_NOTABLE:
        return [new_notable_score(f) for f in films]
    day = seed if seed is not None else today_seed()
    return [explore_score(f, day) for f in films]


def rank(
    films: Sequence[Film],
    scores: Sequence[float],
    threshold: float | None = None,
) -> tuple[list[Film], list[float]]:
    """
    Order films by descending score, optionally dropping those below ``threshold``.

    Equal scores keep their input order.
    """
    if not films:
        return [], []
    values = np.asarray(scores, dtype=float)
    order = np.argsort(-values, kind='stable')
    if threshold is not None:
        order = order[values[order] >= threshold]
    return [films[i] for i in order], values[order].tolist()


def sort_films(
    films: Iterable[Film | Mapping[str, Any]],
    sort_by: "str | SortOption | None" = SortOption.CURATED,
    seed: str | None = None,
) -> list[Film]:
    candidates = [as_film(f) for f in films]
    option = SortOption.parse(sort_by)
    ranked, _ = rank(candidates, sort_scores(candidates, option, seed))
    return ranked


def parse_moods(value: "str | Iterable[str] | None") -> list[str]:
    """Mood selection from a comma-separated string or a list; empty raises InvalidRequest."""
    if value is None:
        raise InvalidRequest("Moods parameter required")
    if isinstance(value, str):
        value = value.split(',')
    moods = [str(m).strip().lower() for m in value if m is not None and str(m).strip()]
    if not moods:
        raise InvalidRequest("Moods parameter required")
    return moods


def parse_decade(value: "int | str | None") -> int:
    """Decade start year from ``1970``, ``"1970"`` or ``"1970s"``."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidRequest("Decade parameter required")
    text = str(value).strip().lower().rstrip('s')
    try:
        return decade_of(int(text))
    except ValueError:
        raise InvalidRequest(f"Invalid decade: {value!r}") from None


def _parse_positive(name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"Invalid {name}: {value!r}") from None
    if number < 1:
        raise InvalidRequest(f"{name} must be at least 1, got {number}")
    return number


@dataclass
class DiscoveryPage:
    """One page of a ranked discovery result."""
    items: list[Film]
    scores: list[float]
    page: int
    total_pages: int
    total: int
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            'items': [f.to_dict() for f in self.items],
            'page': self.page,
            'total_pages': self.total_pages,
            'total': self.total,
            **self.params,
        }


class DiscoveryEngine:
    """
    Stateless per-request ranking over a candidate list.

    Args:
        on_served: Called with the ids of every page served. Intended for the
            show-count bump; it must not block, and any exception it raises
            is logged and ignored.
        clock: Returns the current time; used for the rotation-noise day
        min_context_score: Mood/combined results below this are dropped
    """

    def __init__(
        self,
        on_served: Callable[[list[str]], None] | None = None,
        clock: Callable[[], datetime] | None = None,
        min_context_score: float = MIN_CONTEXT_SCORE,
    ):
        self.on_served = on_served
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.min_context_score = min_context_score

    def explore(
        self,
        films: Iterable[Film | Mapping[str, Any]],
        limit: int = DEFAULT_PAGE_LIMIT,
        page: int = 1,
        sort_by: "str | SortOption | None" = SortOption.CURATED,
    ) -> DiscoveryPage:
        limit, page = _parse_positive('limit', limit), _parse_positive('page', page)
        option = SortOption.parse(sort_by)
        candidates = [as_film(f) for f in films]

        seed = today_seed(self.clock())
        ranked, scores = rank(candidates, sort_scores(candidates, option, seed))
        return self._page(ranked, scores, page, limit, {'sort_by': option.value})

    def decade(
        self,
        films: Iterable[Film | Mapping[str, Any]],
        decade: "int | str | None",
        limit: int = DEFAULT_PAGE_LIMIT,
        page: int = 1,
    ) -> DiscoveryPage:
        decade = parse_decade(decade)
        limit, page = _parse_positive('limit', limit), _parse_positive('page', page)

        candidates = [f for f in (as_film(f) for f in films) if f.decade == decade]
        best = _max_canon(candidates)
        scores = [decade_score(f, max_in_decade=best) for f in candidates]
        ranked, ranked_scores = rank(candidates, scores)
        return self._page(ranked, ranked_scores, page, limit, {'decade': decade})

    def mood(
        self,
        films: Iterable[Film | Mapping[str, Any]],
        moods: "str | Iterable[str] | None",
        limit: int = DEFAULT_PAGE_LIMIT,
        page: int = 1,
    ) -> DiscoveryPage:
        selected = parse_moods(moods)
        limit, page = _parse_positive('limit', limit), _parse_positive('page', page)

        candidates = [as_film(f) for f in films]
        scores = [mood_score(f, selected) for f in candidates]
        ranked, ranked_scores = rank(candidates, scores, threshold=self.min_context_score)
        return self._page(ranked, ranked_scores, page, limit, {'moods': selected})

    def combined(
        self,
        films: Iterable[Film | Mapping[str, Any]],
        decade: "int | str | None",
        moods: "str | Iterable[str] | None",
        limit: int = DEFAULT_PAGE_LIMIT,
        page: int = 1,
    ) -> DiscoveryPage:
        if decade in (None, '') or not moods:
            raise InvalidRequest("Both decade and moods parameters required")
        decade = parse_decade(decade)
        selected = parse_moods(moods)
        limit, page = _parse_positive('limit', limit), _parse_positive('page', page)

        candidates = [f for f in (as_film(f) for f in films) if f.decade == decade]
        scores = [combined_score(f, selected, decade) for f in candidates]
        ranked, ranked_scores = rank(candidates, scores, threshold=self.min_context_score)
        return self._page(ranked, ranked_scores, page, limit, {'decade': decade, 'moods': selected})

    def _page(
        self,
        ranked: list[Film],
        scores: list[float],
        page: int,
        limit: int,
        params: dict[str, Any],
    ) -> DiscoveryPage:
        total = len(ranked)
        skip = (page - 1) * limit
        result = DiscoveryPage(
            items=ranked[skip:skip + limit],
            scores=scores[skip:skip + limit],
            page=page,
            total_pages=math.ceil(total / limit),
            total=total,
            params=params,
        )
        logger.debug(f"Served page {page}/{result.total_pages} ({len(result.items)} of {total}) {params}")
        self._notify_served(result.items)
        return result

    def _notify_served(self, items: list[Film]) -> None:
        if not self.on_served or not items:
            return
        try:
            self.on_served([f.id for f in items])
        except Exception as e:
            logger.warning(f"Failed to record served films: {e}")
