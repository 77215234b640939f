"""Create game activity tables

Revision ID: 5c1e7a2d9b40
Revises:
Create Date: 2026-10-18 09:12:31.114205

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c1e7a2d9b40'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create games, mappings, sessions and rollups."""

    # --- games (catalog, owned by admin tooling) ---
    op.create_table(
        "games",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
    )
    op.create_index("ix_games_name", "games", ["name"])

    # --- discord_game_mappings (admin overrides) ---
    op.create_table(
        "discord_game_mappings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("discord_activity_name", sa.String(255), nullable=False, unique=True),
        sa.Column(
            "game_id", sa.Integer,
            sa.ForeignKey("games.id", ondelete="CASCADE"), nullable=False,
        ),
    )

    # --- game_activity_sessions ---
    op.create_table(
        "game_activity_sessions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column(
            "game_id", sa.Integer,
            sa.ForeignKey("games.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("discord_activity_name", sa.String(255), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_seconds", sa.Integer, nullable=True),
        sa.Column("rolled_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    # At most one open session per (user, activity label)
    op.create_index(
        "uq_game_sessions_one_open", "game_activity_sessions",
        ["user_id", "discord_activity_name"],
        unique=True,
        postgresql_where=sa.text("ended_at IS NULL"),
    )
    op.create_index(
        "ix_game_sessions_user_started", "game_activity_sessions",
        ["user_id", "started_at"],
    )
    op.create_index(
        "ix_game_sessions_ended_at", "game_activity_sessions", ["ended_at"],
    )

    # --- game_activity_rollups ---
    op.create_table(
        "game_activity_rollups",
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column(
            "game_id", sa.Integer,
            sa.ForeignKey("games.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("period", sa.String(10), nullable=False),
        sa.Column("period_start", sa.Date, nullable=False),
        sa.Column("total_seconds", sa.BigInteger, nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("user_id", "game_id", "period", "period_start"),
    )
    op.create_index(
        "ix_game_rollups_game_period", "game_activity_rollups",
        ["game_id", "period", "period_start"],
    )


def downgrade() -> None:
    """Drop all game activity tables."""
    op.drop_index("ix_game_rollups_game_period", table_name="game_activity_rollups")
    op.drop_table("game_activity_rollups")
    op.drop_index("ix_game_sessions_ended_at", table_name="game_activity_sessions")
    op.drop_index("ix_game_sessions_user_started", table_name="game_activity_sessions")
    op.drop_index("uq_game_sessions_one_open", table_name="game_activity_sessions")
    op.drop_table("game_activity_sessions")
    op.drop_table("discord_game_mappings")
    op.drop_index("ix_games_name", table_name="games")
    op.drop_table("games")
