"""
gamepulse.database.repository — Activity Store Access
======================================================

The complete set of queries the activity engine issues, behind one small
class.  Services never build queries themselves; they call these methods
(via ``run_db`` when on the event loop), which keeps the engine testable
against SQLite or a ``MagicMock``.

Each method opens its own short transaction through :func:`get_session`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import Engine, select, text, update

from gamepulse.constants import ensure_utc
from gamepulse.database.engine import get_session
from gamepulse.database.models import DiscordGameMapping, Game, GameActivitySession

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Row shapes handed back to services (detached from the ORM session)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class OpenSessionRow:
    id: int
    user_id: int
    discord_activity_name: str
    started_at: datetime


@dataclass(frozen=True, slots=True)
class ClosedSessionRow:
    id: int
    user_id: int
    game_id: int
    started_at: datetime
    duration_seconds: int


@dataclass(frozen=True, slots=True)
class RollupIncrement:
    """Seconds to add to one ``(user, game, period, period_start)`` row."""
    user_id: int
    game_id: int
    period: str
    period_start: date
    total_seconds: int


_UPSERT_ROLLUP_SQL = text("""
    INSERT INTO game_activity_rollups
        (user_id, game_id, period, period_start, total_seconds)
    VALUES (:user_id, :game_id, :period, :period_start, :total_seconds)
    ON CONFLICT (user_id, game_id, period, period_start)
    DO UPDATE SET total_seconds =
        game_activity_rollups.total_seconds + excluded.total_seconds
""")


def _open_row(s: GameActivitySession) -> OpenSessionRow:
    return OpenSessionRow(
        id=s.id,
        user_id=s.user_id,
        discord_activity_name=s.discord_activity_name,
        started_at=ensure_utc(s.started_at),
    )


class ActivityRepository:
    """Narrow store interface for sessions, rollups and name lookups.

    All methods are synchronous; call via ``await run_db(repo.method, ...)``.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # -------------------------------------------------------------------
    # Name lookups (read-only)
    # -------------------------------------------------------------------
    def find_game_mapping(self, activity_name: str) -> int | None:
        """Game ID from the admin override table, or None."""
        with get_session(self.engine) as session:
            return session.scalar(
                select(DiscordGameMapping.game_id)
                .where(DiscordGameMapping.discord_activity_name == activity_name)
                .limit(1)
            )

    def find_game_by_exact_name(self, activity_name: str) -> int | None:
        """Game ID whose catalog name equals *activity_name* (case-sensitive)."""
        with get_session(self.engine) as session:
            return session.scalar(
                select(Game.id).where(Game.name == activity_name).limit(1)
            )

    # -------------------------------------------------------------------
    # Session writes (flush pipeline)
    # -------------------------------------------------------------------
    def insert_open_session(
        self,
        user_id: int,
        activity_name: str,
        game_id: int | None,
        started_at: datetime,
    ) -> int:
        """Insert an open session row and return its ID.

        Raises :class:`~sqlalchemy.exc.IntegrityError` if an open row for
        the same ``(user_id, activity_name)`` already exists.
        """
        row = GameActivitySession(
            user_id=user_id,
            game_id=game_id,
            discord_activity_name=activity_name,
            started_at=started_at,
        )
        with get_session(self.engine) as session:
            session.add(row)
            session.flush()
            return row.id

    def find_oldest_open_session(
        self, user_id: int, activity_name: str,
    ) -> OpenSessionRow | None:
        """Oldest still-open session for the pair, or None."""
        with get_session(self.engine) as session:
            row = session.scalars(
                select(GameActivitySession)
                .where(
                    GameActivitySession.user_id == user_id,
                    GameActivitySession.discord_activity_name == activity_name,
                    GameActivitySession.ended_at.is_(None),
                )
                .order_by(GameActivitySession.started_at, GameActivitySession.id)
                .limit(1)
            ).first()
            return _open_row(row) if row is not None else None

    def close_session(
        self, session_id: int, ended_at: datetime, duration_seconds: int,
    ) -> bool:
        """Close one session.  Returns False if it was already closed."""
        with get_session(self.engine) as session:
            result = session.execute(
                update(GameActivitySession)
                .where(
                    GameActivitySession.id == session_id,
                    GameActivitySession.ended_at.is_(None),
                )
                .values(ended_at=ended_at, duration_seconds=duration_seconds)
            )
            return result.rowcount > 0

    # -------------------------------------------------------------------
    # Sweeper / recovery
    # -------------------------------------------------------------------
    def find_stale_open_sessions(self, cutoff: datetime) -> list[OpenSessionRow]:
        """Open sessions that started strictly before *cutoff*."""
        with get_session(self.engine) as session:
            rows = session.scalars(
                select(GameActivitySession)
                .where(
                    GameActivitySession.ended_at.is_(None),
                    GameActivitySession.started_at < cutoff,
                )
                .order_by(GameActivitySession.started_at)
            ).all()
            return [_open_row(r) for r in rows]

    def find_open_sessions_since(self, cutoff: datetime) -> list[OpenSessionRow]:
        """Open sessions that started at or after *cutoff*."""
        with get_session(self.engine) as session:
            rows = session.scalars(
                select(GameActivitySession)
                .where(
                    GameActivitySession.ended_at.is_(None),
                    GameActivitySession.started_at >= cutoff,
                )
                .order_by(GameActivitySession.started_at)
            ).all()
            return [_open_row(r) for r in rows]

    def force_close_sessions(
        self,
        session_ids: Sequence[int],
        ended_at: datetime,
        duration_seconds: int,
    ) -> int:
        """Close every listed session that is still open.  Returns the count."""
        if not session_ids:
            return 0
        with get_session(self.engine) as session:
            result = session.execute(
                update(GameActivitySession)
                .where(
                    GameActivitySession.id.in_(list(session_ids)),
                    GameActivitySession.ended_at.is_(None),
                )
                .values(ended_at=ended_at, duration_seconds=duration_seconds)
            )
            return result.rowcount  # type: ignore[return-value]

    # -------------------------------------------------------------------
    # Rollups
    # -------------------------------------------------------------------
    def find_closed_sessions_since(self, since: datetime) -> list[ClosedSessionRow]:
        """Closed, resolved, not-yet-rolled-up sessions ending at/after *since*."""
        with get_session(self.engine) as session:
            rows = session.execute(
                select(
                    GameActivitySession.id,
                    GameActivitySession.user_id,
                    GameActivitySession.game_id,
                    GameActivitySession.started_at,
                    GameActivitySession.duration_seconds,
                )
                .where(
                    GameActivitySession.ended_at.isnot(None),
                    GameActivitySession.game_id.isnot(None),
                    GameActivitySession.duration_seconds.isnot(None),
                    GameActivitySession.rolled_up_at.is_(None),
                    GameActivitySession.ended_at >= since,
                )
                .order_by(GameActivitySession.id)
            ).all()
        return [
            ClosedSessionRow(
                id=r.id,
                user_id=r.user_id,
                game_id=r.game_id,
                started_at=ensure_utc(r.started_at),
                duration_seconds=r.duration_seconds,
            )
            for r in rows
        ]

    def upsert_rollup_additive(
        self,
        increments: Iterable[RollupIncrement],
        *,
        mark_session_ids: Sequence[int] = (),
        rolled_up_at: datetime | None = None,
    ) -> int:
        """Add each increment onto its rollup row (insert if missing).

        When *mark_session_ids* is given, those sessions are stamped with
        *rolled_up_at* in the same transaction, so a session is folded in
        exactly once even if a later run's window overlaps it.

        Returns the number of rollup rows written.
        """
        written = 0
        with get_session(self.engine) as session:
            for inc in increments:
                session.execute(
                    _UPSERT_ROLLUP_SQL,
                    {
                        "user_id": inc.user_id,
                        "game_id": inc.game_id,
                        "period": inc.period,
                        "period_start": inc.period_start.isoformat(),
                        "total_seconds": inc.total_seconds,
                    },
                )
                written += 1

            if mark_session_ids:
                session.execute(
                    update(GameActivitySession)
                    .where(GameActivitySession.id.in_(list(mark_session_ids)))
                    .values(rolled_up_at=rolled_up_at)
                )
        return written
