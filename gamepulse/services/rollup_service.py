"""
gamepulse.services.rollup_service — Session → Rollup Aggregation
=================================================================

Daily job that folds closed sessions into ``game_activity_rollups``.

How it works:
    1. Load sessions that are closed, resolved to a game, have a duration,
       ended within the lookback window (48h by default) and are not yet
       marked as rolled up.
    2. Bucket each session by its ``started_at`` (UTC) into a day, an ISO
       week (Monday start) and a calendar month.
    3. Sum durations per ``(user, game, period, period_start)`` in memory.
    4. Upsert each group with ``total = total + increment`` and stamp the
       sessions' ``rolled_up_at`` in the same transaction.

The upsert is additive, never a replace, so a re-run after a crash only
adds sessions it has not folded before; the ``rolled_up_at`` stamp keeps
overlapping lookback windows from counting a session twice.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta

from gamepulse.constants import ROLLUP_LOOKBACK_HOURS, ensure_utc, utcnow
from gamepulse.database.models import RollupPeriod
from gamepulse.database.repository import (
    ActivityRepository,
    ClosedSessionRow,
    RollupIncrement,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Calendar buckets
# ---------------------------------------------------------------------------
def day_start(ts: datetime) -> date:
    return ensure_utc(ts).date()


def week_start(ts: datetime) -> date:
    """Monday of the ISO week containing *ts*.

    ``date.weekday()`` is Monday=0 … Sunday=6, so a Sunday steps back six
    days to the preceding Monday rather than starting a new week.
    """
    d = day_start(ts)
    return d - timedelta(days=d.weekday())


def month_start(ts: datetime) -> date:
    return day_start(ts).replace(day=1)


def period_starts(ts: datetime) -> dict[RollupPeriod, date]:
    """All bucket keys for a session starting at *ts*."""
    return {
        RollupPeriod.DAY: day_start(ts),
        RollupPeriod.WEEK: week_start(ts),
        RollupPeriod.MONTH: month_start(ts),
    }


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------
def build_rollup_increments(sessions: Iterable[ClosedSessionRow]) -> list[RollupIncrement]:
    """Sum session durations per ``(user, game, period, period_start)``."""
    totals: dict[tuple[int, int, str, date], int] = {}

    for s in sessions:
        if not s.game_id or not s.duration_seconds:
            continue
        for period, start in period_starts(s.started_at).items():
            key = (s.user_id, s.game_id, period.value, start)
            totals[key] = totals.get(key, 0) + s.duration_seconds

    return [
        RollupIncrement(
            user_id=user_id,
            game_id=game_id,
            period=period,
            period_start=start,
            total_seconds=total,
        )
        for (user_id, game_id, period, start), total in totals.items()
    ]


def aggregate_rollups(
    repo: ActivityRepository,
    now: datetime | None = None,
    lookback_hours: int = ROLLUP_LOOKBACK_HOURS,
) -> dict[str, int]:
    """Fold recently closed sessions into the rollup table.

    Returns ``{"sessions": N, "rows": M}``.  Store errors propagate; the
    next scheduled run picks the same sessions up again because nothing
    was stamped.
    """
    now = now or utcnow()
    since = now - timedelta(hours=lookback_hours)

    sessions = repo.find_closed_sessions_since(since)
    if not sessions:
        logger.debug("No closed sessions to roll up")
        return {"sessions": 0, "rows": 0}

    increments = build_rollup_increments(sessions)
    rows = repo.upsert_rollup_additive(
        increments,
        mark_session_ids=[s.id for s in sessions],
        rolled_up_at=now,
    )

    logger.info("Rolled up %d session(s) into %d rollup row(s)", len(sessions), rows)
    return {"sessions": len(sessions), "rows": rows}
