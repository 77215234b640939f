"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from gamepulse.database.models import Base, DiscordGameMapping, Game
from gamepulse.database.repository import ActivityRepository


# ---------------------------------------------------------------------------
# Map BigInteger → INTEGER on SQLite so BIGINT primary keys autoincrement.
# ---------------------------------------------------------------------------
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all GamePulse tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session for seeding and asserting; rolled back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def repo(db_engine: Engine) -> ActivityRepository:
    return ActivityRepository(db_engine)


@pytest.fixture
def catalog(db_session: Session) -> dict[str, int]:
    """Seed a small game catalog plus one admin mapping.

    Returns ``{name: game_id}`` for the catalog games.
    """
    halo = Game(name="Halo")
    wow = Game(name="World of Warcraft")
    ffxiv = Game(name="Final Fantasy XIV")
    db_session.add_all([halo, wow, ffxiv])
    db_session.flush()
    db_session.add(
        DiscordGameMapping(discord_activity_name="FINAL FANTASY XIV", game_id=ffxiv.id)
    )
    db_session.commit()
    return {"Halo": halo.id, "World of Warcraft": wow.id, "Final Fantasy XIV": ffxiv.id}
