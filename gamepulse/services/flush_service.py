"""
gamepulse.services.flush_service — Buffer → Session Rows
=========================================================

Turns one drained batch of buffered events into session writes.

How a batch is processed:
    1. Every activity name in an ``open`` that the resolver hasn't seen
       yet is resolved in one call.
    2. Events are then applied one at a time, in buffer order:
       - ``open``  → insert a session row with ``ended_at = NULL`` unless
         the pair already has an open row.  Unmatched names are stored
         with ``game_id = NULL``.
       - ``close`` → close the oldest open row for the pair with
         ``duration = min(ended_at - started_at, max_session_seconds)``.
         No open row means nothing to do.
    3. Any error on one event is logged and that event is dropped;
       the rest of the batch carries on.

If name resolution itself fails, names resolved before the failure are
kept, opens whose name is still unresolved are dropped for this batch
(nothing is cached for them, so a later open retries), and every other
event proceeds.

**Sequential on purpose:** one store call at a time keeps "oldest open
session first" exact for closes and bounds connection use under bursts.
Call via ``await run_db(flush_events, ...)``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from gamepulse.constants import MAX_SESSION_SECONDS, elapsed_seconds
from gamepulse.engine.events import BufferedEvent, SessionCloseEvent, SessionOpenEvent

if TYPE_CHECKING:
    from gamepulse.database.repository import ActivityRepository
    from gamepulse.engine.resolver import GameNameResolver

logger = logging.getLogger(__name__)


@dataclass
class FlushResult:
    """Per-batch counters, logged and returned to the caller."""

    opened: int = 0
    closed: int = 0
    already_open: int = 0     # open skipped: pair already had an open row
    unmatched_close: int = 0  # close with no open row
    unresolved: int = 0       # open skipped: name resolution failed
    failed: int = 0           # dropped on an error applying it

    @property
    def total(self) -> int:
        return (
            self.opened + self.closed + self.already_open
            + self.unmatched_close + self.unresolved + self.failed
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "opened": self.opened,
            "closed": self.closed,
            "already_open": self.already_open,
            "unmatched_close": self.unmatched_close,
            "unresolved": self.unresolved,
            "failed": self.failed,
        }


def _apply_open(
    repo: ActivityRepository,
    resolver: GameNameResolver,
    ev: SessionOpenEvent,
    result: FlushResult,
) -> None:
    if not resolver.is_cached(ev.activity_name):
        result.unresolved += 1
        logger.warning(
            "Dropping open for user %s / %r: game name unresolved",
            ev.user_id, ev.activity_name,
        )
        return

    existing = repo.find_oldest_open_session(ev.user_id, ev.activity_name)
    if existing is not None:
        result.already_open += 1
        logger.debug(
            "Open skipped, session %d already open for user %s / %r",
            existing.id, ev.user_id, ev.activity_name,
        )
        return

    repo.insert_open_session(
        ev.user_id, ev.activity_name, resolver.get(ev.activity_name), ev.started_at,
    )
    result.opened += 1


def _apply_close(
    repo: ActivityRepository,
    ev: SessionCloseEvent,
    result: FlushResult,
    max_session_seconds: int,
) -> None:
    session = repo.find_oldest_open_session(ev.user_id, ev.activity_name)
    if session is None:
        result.unmatched_close += 1
        return

    duration = min(elapsed_seconds(session.started_at, ev.ended_at), max_session_seconds)
    if repo.close_session(session.id, ev.ended_at, duration):
        result.closed += 1
    else:
        # Closed underneath us (sweeper) between the lookup and the update
        result.unmatched_close += 1


def flush_events(
    repo: ActivityRepository,
    resolver: GameNameResolver,
    events: Sequence[BufferedEvent],
    max_session_seconds: int = MAX_SESSION_SECONDS,
) -> FlushResult:
    """Persist one drained batch.  A failing event is dropped, never the batch."""
    result = FlushResult()
    if not events:
        return result

    unresolved = {
        ev.activity_name
        for ev in events
        if isinstance(ev, SessionOpenEvent) and not resolver.is_cached(ev.activity_name)
    }
    if unresolved:
        try:
            resolver.resolve(sorted(unresolved))
        except Exception:
            logger.exception(
                "Game name resolution failed for %d name(s); affected opens will be dropped",
                len(unresolved),
            )

    for ev in events:
        try:
            if isinstance(ev, SessionOpenEvent):
                _apply_open(repo, resolver, ev, result)
            else:
                _apply_close(repo, ev, result, max_session_seconds)
        except SQLAlchemyError as exc:
            result.failed += 1
            logger.warning(
                "Failed to %s session for user %s / %r: %s",
                ev.type, ev.user_id, ev.activity_name, exc,
            )
        except Exception:
            result.failed += 1
            logger.exception(
                "Unexpected error applying %s for user %s / %r; event dropped",
                ev.type, ev.user_id, ev.activity_name,
            )

    logger.debug(
        "Flushed %d opens + %d closes (%d already open, %d unmatched closes, "
        "%d unresolved, %d failed)",
        result.opened, result.closed, result.already_open,
        result.unmatched_close, result.unresolved, result.failed,
    )
    return result
