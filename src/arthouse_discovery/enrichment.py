"""
Derived-field computation for ingestion and migration.

Computes the fields cached on each film (derived tags, arthouse score, base
canon score, moods) and plans removal of mainstream films that fall below
the arthouse threshold.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable, Mapping

from .arthouse import arthouse_score, score_breakdown
from .canon import base_canon_score
from .config import ARTHOUSE_PRUNE_THRESHOLD, CANON_REFERENCE_YEAR, PRESERVED_TIERS
from .film import Film, as_film
from .moods import assign_moods
from .tagging import generate_tags

logger = logging.getLogger(__name__)


def enrich_film(
    film: Film | Mapping[str, Any],
    retag: bool = False,
    reset_counters: bool = False,
    reference_year: int = CANON_REFERENCE_YEAR,
) -> Film:
    """
    Return a copy of ``film`` with its derived fields recomputed.

    Tags feed both the arthouse score and the moods, so they are settled
    first. Existing tags are kept unless ``retag`` is set.

    Args:
        film: Film or raw record
        retag: Regenerate derived tags even when the film already has some
        reset_counters: Zero show_count and clear last_shown_at
        reference_year: Year treated as "now" by the canon score
    """
    film = as_film(film)
    tags = generate_tags(film) if retag or not film.derived_tags else list(film.derived_tags)
    updated = replace(film, derived_tags=tags)
    updated = replace(
        updated,
        arthouse_score=arthouse_score(updated),
        base_canon_score=base_canon_score(updated, reference_year),
        moods=assign_moods(tags),
    )
    if reset_counters:
        updated = replace(updated, show_count=0, last_shown_at=None)
    return updated


@dataclass
class PrunePlan:
    """Outcome of scoring a catalog against the arthouse threshold."""
    threshold: int
    preserved: list[dict] = field(default_factory=list)
    kept: list[dict] = field(default_factory=list)
    to_remove: list[dict] = field(default_factory=list)

    @property
    def remove_ids(self) -> list[str]:
        return [entry['id'] for entry in self.to_remove]

    def stats(self) -> dict[str, int]:
        return {
            'total': len(self.preserved) + len(self.kept) + len(self.to_remove),
            'preserved': len(self.preserved),
            'kept': len(self.kept),
            'removed': len(self.to_remove),
        }

    def to_report(self, dry_run: bool) -> dict[str, Any]:
        return {
            'timestamp': datetime.now().isoformat(),
            'threshold': self.threshold,
            'dry_run': dry_run,
            'stats': self.stats(),
            'preserved': self.preserved,
            'to_remove': self.to_remove,
        }


def plan_prune(
    films: Iterable[Film | Mapping[str, Any]],
    threshold: int = ARTHOUSE_PRUNE_THRESHOLD,
) -> PrunePlan:
    """
    Split a catalog into preserved, kept and removable films.

    Curated tiers are always preserved whatever their score. Removals are
    ordered lowest score first and carry a score breakdown.
    """
    plan = PrunePlan(threshold=threshold)

    for film in (as_film(f) for f in films):
        score = arthouse_score(film)
        entry = {'id': film.id, 'title': film.title, 'year': film.year, 'tier': film.tier, 'score': score}

        if film.tier in PRESERVED_TIERS:
            plan.preserved.append(entry)
        elif score < threshold:
            entry.update({
                'breakdown': score_breakdown(film).to_dict(),
                'popularity': film.popularity,
                'vote_average': film.vote_average,
                'vote_count': film.vote_count,
                'genres': film.genres,
                'country': film.country,
            })
            plan.to_remove.append(entry)
        else:
            plan.kept.append(entry)

    plan.to_remove.sort(key=lambda e: e['score'])
    logger.debug(f"Prune plan at threshold {threshold}: {plan.stats()}")
    return plan
