"""
gamepulse.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- games                   — Game catalog (read-only to the activity engine)
- discord_game_mappings   — Admin overrides: activity label → game
- game_activity_sessions  — One row per contiguous play session
- game_activity_rollups   — Additive day/week/month playtime totals
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all GamePulse ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class RollupPeriod(enum.StrEnum):
    """Calendar buckets a session's playtime is folded into."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


# ---------------------------------------------------------------------------
# Game — catalog entry
# ---------------------------------------------------------------------------
class Game(Base):
    """A game known to the community.

    Owned by the admin tooling; the activity engine only reads ``name``
    for exact-match resolution.
    """
    __tablename__ = "games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        Index("ix_games_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<Game id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# DiscordGameMapping — activity label override
# ---------------------------------------------------------------------------
class DiscordGameMapping(Base):
    """Maps a raw Discord activity label to a catalog game.

    Takes priority over exact-name matching against ``games.name``.
    """
    __tablename__ = "discord_game_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discord_activity_name: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )
    game_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<DiscordGameMapping name={self.discord_activity_name!r} "
            f"game={self.game_id}>"
        )


# ---------------------------------------------------------------------------
# GameActivitySession — one contiguous play interval
# ---------------------------------------------------------------------------
class GameActivitySession(Base):
    """A single play session inferred from one or more signal sources.

    ``ended_at`` and ``duration_seconds`` stay NULL while the session is
    open.  ``game_id`` is NULL when the activity label matched nothing.
    ``rolled_up_at`` is stamped once the session has been folded into
    ``game_activity_rollups``.
    """
    __tablename__ = "game_activity_sessions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    game_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="SET NULL"), nullable=True
    )
    discord_activity_name: Mapped[str] = mapped_column(String(255), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rolled_up_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        # At most one open session per (user, activity label)
        Index(
            "uq_game_sessions_one_open",
            "user_id",
            "discord_activity_name",
            unique=True,
            postgresql_where=ended_at.is_(None),
            sqlite_where=ended_at.is_(None),
        ),
        Index("ix_game_sessions_user_started", "user_id", "started_at"),
        Index("ix_game_sessions_ended_at", "ended_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<GameActivitySession id={self.id} user={self.user_id} "
            f"name={self.discord_activity_name!r} open={self.ended_at is None}>"
        )


# ---------------------------------------------------------------------------
# GameActivityRollup — additive playtime totals
# ---------------------------------------------------------------------------
class GameActivityRollup(Base):
    """Pre-computed playtime per user + game + calendar bucket.

    Written only by the rollup aggregator with an additive upsert, so
    ``total_seconds`` never decreases.
    """
    __tablename__ = "game_activity_rollups"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    game_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="CASCADE"), primary_key=True
    )
    period: Mapped[str] = mapped_column(String(10), primary_key=True)
    period_start: Mapped[date] = mapped_column(Date, primary_key=True)
    total_seconds: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        Index("ix_game_rollups_game_period", "game_id", "period", "period_start"),
    )

    def __repr__(self) -> str:
        return (
            f"<GameActivityRollup user={self.user_id} game={self.game_id} "
            f"{self.period}:{self.period_start} total={self.total_seconds}>"
        )
