"""
Discovery requests against the local film store.

Loads candidates, ranks them with ``DiscoveryEngine`` and hands the served
film ids to a background worker that bumps their show counts. The response
never waits on that write, and a failed write is only logged.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable

from . import database
from .config import DEFAULT_PAGE_LIMIT, IMPRESSION_WORKERS
from .discovery import DiscoveryEngine, DiscoveryPage, InvalidRequest, SortOption, parse_decade
from .moods import available_moods

logger = logging.getLogger(__name__)


class ImpressionRecorder:
    """Fire-and-forget show-count bumps on a small thread pool."""

    def __init__(
        self,
        record: Callable[[list[str]], int] | None = None,
        max_workers: int = IMPRESSION_WORKERS,
    ):
        self._record = record or database.record_impressions
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="impressions")

    def submit(self, film_ids: list[str]) -> Future:
        future = self._executor.submit(self._record, list(film_ids))
        future.add_done_callback(self._log_failure)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.warning(f"Show-count update failed: {exc}")

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class DiscoveryService:
    """
    Discovery endpoints backed by the film store.

    Args:
        recorder: Receives served ids; pass None to serve without counting
        engine: Ranking engine; built around ``recorder`` when omitted
    """

    def __init__(self, recorder: ImpressionRecorder | None = None, engine: DiscoveryEngine | None = None):
        self.recorder = recorder
        self.engine = engine or DiscoveryEngine(on_served=recorder.submit if recorder else None)

    def explore(self, limit: int = DEFAULT_PAGE_LIMIT, page: int = 1,
                sort_by: str | SortOption = SortOption.CURATED) -> DiscoveryPage:
        return self.engine.explore(database.load_films(), limit=limit, page=page, sort_by=sort_by)

    def decade(self, decade, limit: int = DEFAULT_PAGE_LIMIT, page: int = 1) -> DiscoveryPage:
        decade_value = parse_decade(decade)
        return self.engine.decade(database.load_films(decade_value), decade_value, limit=limit, page=page)

    def mood(self, moods: str | Iterable[str] | None, limit: int = DEFAULT_PAGE_LIMIT,
             page: int = 1) -> DiscoveryPage:
        return self.engine.mood(database.load_films(), moods, limit=limit, page=page)

    def combined(self, decade, moods: str | Iterable[str] | None, limit: int = DEFAULT_PAGE_LIMIT,
                 page: int = 1) -> DiscoveryPage:
        if decade in (None, '') or not moods:
            raise InvalidRequest("Both decade and moods parameters required")
        decade_value = parse_decade(decade)
        return self.engine.combined(database.load_films(decade_value), decade_value, moods, limit=limit, page=page)

    def moods(self) -> list[str]:
        return available_moods(database.load_films())

    def close(self) -> None:
        if self.recorder:
            self.recorder.shutdown(wait=True)
