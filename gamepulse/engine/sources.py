"""
gamepulse.engine.sources — Multi-Source Session Dedup
======================================================

Rich Presence and voice-state signals arrive independently and often
overlap: a member sitting in voice while their client also reports
"Playing Halo" would otherwise produce two sessions for one stretch of
play.  :class:`SourceDedupTracker` keeps, per ``(user_id, activity_name)``,
the set of sources currently claiming it and only emits buffer events on
the edges:

* first source in   → one ``open`` event
* last source out   → one ``close`` event
* anything between  → nothing

All state is in-memory and process-local; a restart forgets it and the
store (plus orphan recovery) becomes the source of truth.
"""

from __future__ import annotations

import logging
from datetime import datetime

from gamepulse.constants import DEFAULT_SOURCE
from gamepulse.engine.buffer import EventBuffer
from gamepulse.engine.events import SessionCloseEvent, SessionOpenEvent

logger = logging.getLogger(__name__)


class SourceDedupTracker:
    """Collapses overlapping source claims into single open/close events."""

    def __init__(self, buffer: EventBuffer, default_source: str = DEFAULT_SOURCE) -> None:
        self.buffer = buffer
        self.default_source = default_source
        # {(user_id, activity_name): {source, ...}}; entry removed when empty
        self._active: dict[tuple[int, str], set[str]] = {}

    def record_start(
        self,
        user_id: int,
        activity_name: str,
        at: datetime,
        source: str | None = None,
    ) -> bool:
        """Register *source* as claiming the pair.

        Returns True if this opened a new logical session (an ``open``
        event was buffered).
        """
        source = source or self.default_source
        key = (user_id, activity_name)
        sources = self._active.get(key)

        opened = False
        if not sources:
            self.buffer.append(SessionOpenEvent(
                user_id=user_id, activity_name=activity_name, started_at=at,
            ))
            sources = self._active[key] = set()
            opened = True

        sources.add(source)
        logger.debug(
            "Source start: user=%s name=%r source=%s active=%s",
            user_id, activity_name, source, sorted(sources),
        )
        return opened

    def record_stop(
        self,
        user_id: int,
        activity_name: str,
        at: datetime,
        source: str | None = None,
    ) -> bool:
        """Release *source*'s claim on the pair.

        Buffers a ``close`` when no source is left, including when the pair
        was never tracked at all (e.g. after a restart); the flush pipeline
        treats a close without an open row as a no-op.

        Returns True if a ``close`` event was buffered.
        """
        source = source or self.default_source
        key = (user_id, activity_name)
        sources = self._active.get(key)

        if sources is not None:
            sources.discard(source)
            if sources:
                logger.debug(
                    "Source stop (still claimed): user=%s name=%r source=%s active=%s",
                    user_id, activity_name, source, sorted(sources),
                )
                return False
            del self._active[key]

        self.buffer.append(SessionCloseEvent(
            user_id=user_id, activity_name=activity_name, ended_at=at,
        ))
        return True

    def has_active_source(
        self, user_id: int, activity_name: str, source: str | None = None,
    ) -> bool:
        """Whether *source* currently claims the pair."""
        return (source or self.default_source) in self._active.get(
            (user_id, activity_name), ()
        )

    def active_labels(self, user_id: int, source: str | None = None) -> list[str]:
        """Activity names *source* currently claims for *user_id*."""
        source = source or self.default_source
        return sorted(
            name
            for (uid, name), sources in self._active.items()
            if uid == user_id and source in sources
        )

    def clear(self) -> None:
        self._active.clear()

    def __len__(self) -> int:
        """Number of (user, activity) pairs with at least one claim."""
        return len(self._active)
