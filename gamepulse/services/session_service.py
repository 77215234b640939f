"""
gamepulse.services.session_service — Stale Sweep, Orphan Recovery, Stats
=========================================================================

Store-side maintenance of ``game_activity_sessions``:

- **Stale sweep** (every 15 min) — force-closes sessions open longer than
  the 24h cap.  Catches members whose stop signal never arrived.
- **Orphan recovery** (once, at startup) — closes everything a previous
  process left open.  Sessions past the cap close at the cap; younger
  ones close with their real elapsed time.
- **Stats** — counts for the health view.

All functions are synchronous; call via ``await run_db(...)``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import Engine, func, select

from gamepulse.constants import MAX_SESSION_SECONDS, elapsed_seconds, ensure_utc, utcnow
from gamepulse.database.engine import get_session
from gamepulse.database.models import GameActivityRollup, GameActivitySession
from gamepulse.database.repository import ActivityRepository

logger = logging.getLogger(__name__)


def sweep_stale_sessions(
    repo: ActivityRepository,
    now: datetime | None = None,
    max_session_seconds: int = MAX_SESSION_SECONDS,
) -> int:
    """Close every session open since before ``now - max_session_seconds``.

    Closed rows get ``ended_at = now`` and the capped duration.
    Returns the number of sessions closed.
    """
    now = now or utcnow()
    cutoff = now - timedelta(seconds=max_session_seconds)

    stale = repo.find_stale_open_sessions(cutoff)
    swept = repo.force_close_sessions([s.id for s in stale], now, max_session_seconds)

    if swept:
        logger.info(
            "Swept %d stale session(s) older than %ds", swept, max_session_seconds,
        )
    return swept


def close_orphaned_sessions(
    repo: ActivityRepository,
    now: datetime | None = None,
    max_session_seconds: int = MAX_SESSION_SECONDS,
) -> dict[str, int]:
    """Close sessions left open by a prior process.

    Returns ``{"stale": N, "recent": M}``.
    """
    now = now or utcnow()
    cutoff = now - timedelta(seconds=max_session_seconds)

    stale = repo.find_stale_open_sessions(cutoff)
    stale_closed = repo.force_close_sessions(
        [s.id for s in stale], now, max_session_seconds,
    )

    recent_closed = 0
    for s in repo.find_open_sessions_since(cutoff):
        duration = min(elapsed_seconds(s.started_at, now), max_session_seconds)
        if repo.close_session(s.id, now, duration):
            recent_closed += 1

    total = stale_closed + recent_closed
    if total:
        logger.info(
            "Closed %d orphaned session(s) from prior restart (%d stale, %d recent)",
            total, stale_closed, recent_closed,
        )
    return {"stale": stale_closed, "recent": recent_closed}


def get_session_stats(engine: Engine) -> dict:
    """Return session / rollup table statistics for the health view."""
    with get_session(engine) as session:
        open_sessions = session.scalar(
            select(func.count()).select_from(GameActivitySession)
            .where(GameActivitySession.ended_at.is_(None))
        ) or 0

        closed_sessions = session.scalar(
            select(func.count()).select_from(GameActivitySession)
            .where(GameActivitySession.ended_at.isnot(None))
        ) or 0

        unresolved_sessions = session.scalar(
            select(func.count()).select_from(GameActivitySession)
            .where(GameActivitySession.game_id.is_(None))
        ) or 0

        oldest_open = session.scalar(
            select(func.min(GameActivitySession.started_at))
            .where(GameActivitySession.ended_at.is_(None))
        )

        rollup_rows = session.scalar(
            select(func.count()).select_from(GameActivityRollup)
        ) or 0

    return {
        "open_sessions": open_sessions,
        "closed_sessions": closed_sessions,
        "unresolved_sessions": unresolved_sessions,
        "rollup_rows": rollup_rows,
        "oldest_open_started_at": (
            ensure_utc(oldest_open).isoformat() if oldest_open else None
        ),
    }
