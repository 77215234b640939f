"""
tests/test_flush.py — Flush Pipeline
=====================================

Tests for:
- Open/close persistence against a real SQLite schema
- Duration capping, unmatched closes, unresolved names
- One-open-row-per-pair safety net
- Per-event failure isolation and resolver failure handling
- The end-to-end presence + voice scenario through GameActivityService
- Serialized flushes and events recorded while a flush is in flight
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from gamepulse.constants import ensure_utc
from gamepulse.database.models import GameActivitySession
from gamepulse.database.repository import ActivityRepository
from gamepulse.engine.events import SessionCloseEvent, SessionOpenEvent
from gamepulse.engine.resolver import GameNameResolver
from gamepulse.services.activity_service import GameActivityService
from gamepulse.services.flush_service import flush_events

T0 = datetime(2026, 10, 12, 20, 0, tzinfo=UTC)


def run_async(coro):
    """Run an async coroutine to completion without pytest-asyncio."""
    return asyncio.run(coro)


def _open(user_id, name, at):
    return SessionOpenEvent(user_id=user_id, activity_name=name, started_at=at)


def _close(user_id, name, at):
    return SessionCloseEvent(user_id=user_id, activity_name=name, ended_at=at)


def _sessions(db_session):
    db_session.expire_all()
    return db_session.scalars(
        select(GameActivitySession).order_by(GameActivitySession.id)
    ).all()


# ---------------------------------------------------------------------------
# flush_events against SQLite
# ---------------------------------------------------------------------------
class TestFlushEvents:

    def test_open_inserts_resolved_session(self, repo, catalog, db_session):
        result = flush_events(repo, GameNameResolver(repo), [_open(1, "Halo", T0)])

        assert result.opened == 1
        rows = _sessions(db_session)
        assert len(rows) == 1
        assert rows[0].game_id == catalog["Halo"]
        assert rows[0].ended_at is None
        assert rows[0].duration_seconds is None
        assert ensure_utc(rows[0].started_at) == T0

    def test_unmatched_name_persists_with_null_game(self, repo, catalog, db_session):
        flush_events(repo, GameNameResolver(repo), [_open(1, "Obscure Indie", T0)])

        rows = _sessions(db_session)
        assert len(rows) == 1
        assert rows[0].game_id is None
        assert rows[0].discord_activity_name == "Obscure Indie"

    def test_open_then_close_in_one_batch(self, repo, catalog, db_session):
        result = flush_events(repo, GameNameResolver(repo), [
            _open(1, "Halo", T0),
            _close(1, "Halo", T0 + timedelta(seconds=90)),
        ])

        assert (result.opened, result.closed) == (1, 1)
        row = _sessions(db_session)[0]
        assert row.duration_seconds == 90
        assert ensure_utc(row.ended_at) == T0 + timedelta(seconds=90)

    def test_close_then_reopen_in_one_batch(self, repo, catalog, db_session):
        """Buffer order is honoured: the old row closes before the new opens."""
        resolver = GameNameResolver(repo)
        flush_events(repo, resolver, [_open(1, "Halo", T0)])

        result = flush_events(repo, resolver, [
            _close(1, "Halo", T0 + timedelta(minutes=10)),
            _open(1, "Halo", T0 + timedelta(minutes=11)),
        ])

        assert (result.closed, result.opened) == (1, 1)
        rows = _sessions(db_session)
        assert len(rows) == 2
        assert rows[0].duration_seconds == 600
        assert rows[1].ended_at is None

    def test_duration_capped_at_24h(self, repo, catalog, db_session):
        resolver = GameNameResolver(repo)
        flush_events(repo, resolver, [_open(1, "Halo", T0)])
        flush_events(repo, resolver, [_close(1, "Halo", T0 + timedelta(hours=25))])

        row = _sessions(db_session)[0]
        assert row.duration_seconds == 86400
        assert ensure_utc(row.ended_at) == T0 + timedelta(hours=25)

    def test_close_without_open_is_noop(self, repo, catalog, db_session):
        result = flush_events(repo, GameNameResolver(repo), [_close(1, "Halo", T0)])

        assert result.unmatched_close == 1
        assert result.closed == 0
        assert _sessions(db_session) == []

    def test_existing_open_row_blocks_duplicate(self, repo, catalog, db_session):
        resolver = GameNameResolver(repo)
        flush_events(repo, resolver, [_open(1, "Halo", T0)])
        result = flush_events(repo, resolver, [_open(1, "Halo", T0 + timedelta(minutes=5))])

        assert result.already_open == 1
        rows = _sessions(db_session)
        assert len(rows) == 1
        assert ensure_utc(rows[0].started_at) == T0

    def test_close_ignores_already_closed_rows(self, repo, catalog, db_session):
        db_session.add_all([
            GameActivitySession(
                user_id=1, discord_activity_name="Halo",
                started_at=T0 - timedelta(hours=2),
                ended_at=T0 - timedelta(hours=1), duration_seconds=3600,
            ),
            GameActivitySession(
                user_id=1, discord_activity_name="Halo", started_at=T0,
            ),
        ])
        db_session.commit()

        flush_events(repo, GameNameResolver(repo), [
            _close(1, "Halo", T0 + timedelta(minutes=1)),
        ])
        rows = _sessions(db_session)
        assert rows[0].duration_seconds == 3600  # untouched
        assert rows[1].duration_seconds == 60

    def test_empty_batch(self, repo):
        result = flush_events(repo, GameNameResolver(repo), [])
        assert result.total == 0


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------
class TestFlushFailures:

    def test_store_error_drops_only_that_event(self):
        repo = MagicMock()
        repo.find_game_mapping.return_value = None
        repo.find_game_by_exact_name.return_value = 5
        repo.find_oldest_open_session.return_value = None
        repo.insert_open_session.side_effect = [
            OperationalError("INSERT", {}, Exception("connection reset")),
            42,
        ]

        result = flush_events(repo, GameNameResolver(repo), [
            _open(1, "Halo", T0),
            _open(2, "Halo", T0),
        ])

        assert result.failed == 1
        assert result.opened == 1
        assert repo.insert_open_session.call_count == 2

    def test_unexpected_error_drops_only_that_event(self):
        repo = MagicMock()
        repo.find_game_mapping.return_value = None
        repo.find_game_by_exact_name.return_value = None
        repo.find_oldest_open_session.return_value = None
        repo.insert_open_session.side_effect = [ValueError("bad row"), 7]

        result = flush_events(repo, GameNameResolver(repo), [
            _open(1, "Halo", T0),
            _open(2, "Halo", T0),
        ])

        assert result.failed == 1
        assert result.opened == 1

    def test_unique_index_violation_is_caught(self):
        repo = MagicMock()
        repo.find_game_mapping.return_value = None
        repo.find_game_by_exact_name.return_value = None
        repo.find_oldest_open_session.return_value = None
        repo.insert_open_session.side_effect = IntegrityError("INSERT", {}, Exception("dup"))

        result = flush_events(repo, GameNameResolver(repo), [_open(1, "Halo", T0)])
        assert result.failed == 1

    def test_resolver_failure_drops_only_unresolved_opens(self, repo, catalog, db_session):
        original = repo.find_game_mapping

        def _flaky_mapping(name):
            if name == "Zork":
                raise OperationalError("SELECT", {}, Exception("db hiccup"))
            return original(name)

        with patch.object(repo, "find_game_mapping", side_effect=_flaky_mapping):
            resolver = GameNameResolver(repo)
            result = flush_events(repo, resolver, [
                _open(1, "Halo", T0),
                _open(1, "Zork", T0),
                _close(2, "Halo", T0),
            ])

        assert result.opened == 1
        assert result.unresolved == 1
        assert result.unmatched_close == 1
        assert not resolver.is_cached("Zork")
        assert [r.discord_activity_name for r in _sessions(db_session)] == ["Halo"]


# ---------------------------------------------------------------------------
# Through GameActivityService
# ---------------------------------------------------------------------------
class TestServiceFlush:

    def test_presence_and_voice_scenario(self, db_engine, catalog, db_session):
        """Overlapping presence + voice claims become exactly one session."""
        service = GameActivityService(db_engine)

        service.record_source_start(1, "Halo", T0, "presence")
        service.record_source_start(1, "Halo", T0 + timedelta(seconds=5), "voice")
        service.record_source_stop(1, "Halo", T0 + timedelta(seconds=600), "voice")
        service.record_source_stop(1, "Halo", T0 + timedelta(seconds=700), "presence")

        result = run_async(service.flush())
        assert (result.opened, result.closed) == (1, 1)

        rows = _sessions(db_session)
        assert len(rows) == 1
        assert rows[0].user_id == 1
        assert rows[0].discord_activity_name == "Halo"
        assert ensure_utc(rows[0].started_at) == T0
        assert ensure_utc(rows[0].ended_at) == T0 + timedelta(seconds=700)
        assert rows[0].duration_seconds == 700

    def test_open_and_close_across_flushes(self, db_engine, catalog, db_session):
        service = GameActivityService(db_engine)

        service.record_source_start(3, "World of Warcraft", T0)
        run_async(service.flush())
        assert _sessions(db_session)[0].ended_at is None

        service.record_source_stop(3, "World of Warcraft", T0 + timedelta(hours=2))
        run_async(service.flush())
        assert _sessions(db_session)[0].duration_seconds == 7200

    def test_second_empty_flush_touches_nothing(self):
        repo = MagicMock()
        repo.find_game_mapping.return_value = None
        repo.find_game_by_exact_name.return_value = None
        repo.find_oldest_open_session.return_value = None
        service = GameActivityService(MagicMock(), repo=repo)

        service.record_source_start(1, "Halo", T0)
        run_async(service.flush())
        repo.reset_mock()

        result = run_async(service.flush())
        assert result.total == 0
        assert repo.mock_calls == []

    def _slow_insert_repo(self, db_engine):
        repo = ActivityRepository(db_engine)
        insert = repo.insert_open_session

        def _slow(*args):
            time.sleep(0.3)
            return insert(*args)

        return repo, _slow

    def test_overlapping_flushes_apply_in_drain_order(self, db_engine, catalog, db_session):
        """A manual flush during the timer's flush waits for it to finish."""
        repo, slow_insert = self._slow_insert_repo(db_engine)
        service = GameActivityService(db_engine, repo=repo)

        async def main():
            with patch.object(repo, "insert_open_session", side_effect=slow_insert):
                service.record_source_start(1, "Halo", T0)
                in_flight = asyncio.create_task(service.flush())
                await asyncio.sleep(0.05)

                service.record_source_stop(1, "Halo", T0 + timedelta(seconds=700))
                second = await service.flush()
                return await in_flight, second

        first, second = run_async(main())

        assert first.opened == 1
        assert second.closed == 1
        assert second.unmatched_close == 0
        row = _sessions(db_session)[0]
        assert row.duration_seconds == 700
        assert ensure_utc(row.ended_at) == T0 + timedelta(seconds=700)

    def test_event_recorded_mid_flush_lands_in_next_batch(self, db_engine, catalog, db_session):
        repo, slow_insert = self._slow_insert_repo(db_engine)
        service = GameActivityService(db_engine, repo=repo)

        async def main():
            with patch.object(repo, "insert_open_session", side_effect=slow_insert):
                service.record_source_start(1, "Halo", T0)
                in_flight = asyncio.create_task(service.flush())
                await asyncio.sleep(0.05)

                service.record_source_start(2, "World of Warcraft", T0)
                assert len(service.buffer) == 1
                first = await in_flight
                second = await service.flush()
                return first, second

        first, second = run_async(main())

        assert first.opened == 1
        assert second.opened == 1
        rows = _sessions(db_session)
        assert [(r.user_id, r.discord_activity_name) for r in rows] == [
            (1, "Halo"), (2, "World of Warcraft"),
        ]

    def test_flush_never_raises(self):
        service = GameActivityService(MagicMock(), repo=MagicMock())
        service.record_source_start(1, "Halo", T0)

        with patch(
            "gamepulse.services.activity_service.flush_events",
            side_effect=RuntimeError("boom"),
        ):
            result = run_async(service.flush())

        assert result.failed == 1
        assert len(service.buffer) == 0
