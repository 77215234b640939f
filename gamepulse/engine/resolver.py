"""
gamepulse.engine.resolver — Activity Name → Game Resolution
============================================================

Resolution order for a raw Discord activity label:
  1. ``discord_game_mappings`` admin override — exact label match
  2. ``games.name`` — exact, case-sensitive match
  3. ``None`` — unmatched (still cached)

Results, including ``None``, are cached for the life of the process.
Recurring labels therefore cost one lookup per restart; the flip side is
that a mapping added by an admin is only picked up after a restart.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gamepulse.database.repository import ActivityRepository

logger = logging.getLogger(__name__)


class GameNameResolver:
    """Thread-safe label → game ID cache backed by the activity repository.

    :meth:`resolve` is synchronous and runs on a worker thread via
    ``run_db``; the lock guards the cache against overlapping flushes.
    """

    def __init__(self, repo: ActivityRepository) -> None:
        self._repo = repo
        self._lock = threading.Lock()
        # activity_name → game_id | None
        self._cache: dict[str, int | None] = {}

    def is_cached(self, activity_name: str) -> bool:
        with self._lock:
            return activity_name in self._cache

    def get(self, activity_name: str) -> int | None:
        """Cached game ID (None when unmatched *or* not yet resolved)."""
        with self._lock:
            return self._cache.get(activity_name)

    def resolve(self, names: Iterable[str]) -> dict[str, int | None]:
        """Resolve *names*, querying the store only for uncached ones.

        Each name is cached as soon as it is resolved, so if a query raises
        part-way through, earlier names keep their result.  The exception
        propagates to the caller.
        """
        result: dict[str, int | None] = {}
        looked_up = 0

        for name in dict.fromkeys(names):
            with self._lock:
                if name in self._cache:
                    result[name] = self._cache[name]
                    continue

            game_id = self._repo.find_game_mapping(name)
            if game_id is None:
                game_id = self._repo.find_game_by_exact_name(name)
            looked_up += 1

            with self._lock:
                self._cache[name] = game_id
            result[name] = game_id

            if game_id is None:
                logger.debug("No game match for activity %r; caching as unmatched", name)

        if looked_up:
            logger.debug("Resolved %d activity name(s) against the store", looked_up)
        return result

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
