"""
gamepulse.services.activity_service — The Game Activity Engine
===============================================================

One long-lived :class:`GameActivityService` per process owns every piece
of in-memory tracking state and the jobs that drain it:

    listeners ──► SourceDedupTracker ──► EventBuffer ──(30s)──► flush_events ──► DB
                                                          sweep (15 min) ──► DB
                                                          rollup (daily) ──► DB

Lifecycle:
    ``await service.start()`` closes sessions orphaned by a previous
    process, then starts the scheduler.  ``service.shutdown()`` stops the
    scheduler and clears all in-memory state.  It does **not** flush:
    events still buffered at that moment are lost.  Callers that need
    them must ``await service.flush()`` first.

The listener-facing methods are plain synchronous calls made on the event
loop thread; store work always goes through ``run_db``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, time

from sqlalchemy import Engine

from gamepulse.config import TrackingConfig
from gamepulse.constants import utcnow
from gamepulse.database.engine import run_db
from gamepulse.database.repository import ActivityRepository
from gamepulse.engine.buffer import EventBuffer
from gamepulse.engine.resolver import GameNameResolver
from gamepulse.engine.scheduler import Scheduler
from gamepulse.engine.sources import SourceDedupTracker
from gamepulse.services import rollup_service, session_service
from gamepulse.services.flush_service import FlushResult, flush_events

logger = logging.getLogger(__name__)

# Scheduler job names
JOB_FLUSH = "flush"
JOB_SWEEP = "sweep_stale_sessions"
JOB_ROLLUP = "daily_rollup"


class GameActivityService:
    """Tracks who is playing what and persists it as sessions and rollups.

    Parameters
    ----------
    engine:
        SQLAlchemy engine for the activity tables.
    tracking:
        Timing / limit settings.  Defaults match :mod:`gamepulse.constants`.
    repo, scheduler:
        Injection points for tests.
    """

    def __init__(
        self,
        engine: Engine,
        tracking: TrackingConfig | None = None,
        *,
        repo: ActivityRepository | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.engine = engine
        self.tracking = tracking or TrackingConfig()
        self.repo = repo or ActivityRepository(engine)

        self.buffer = EventBuffer()
        self.sources = SourceDedupTracker(self.buffer, self.tracking.default_source)
        self.resolver = GameNameResolver(self.repo)

        self.scheduler = scheduler or Scheduler()
        self.scheduler.add_interval(
            JOB_FLUSH, self.tracking.flush_interval_seconds, self.flush,
        )
        self.scheduler.add_interval(
            JOB_SWEEP, self.tracking.sweep_interval_minutes * 60, self.sweep_stale_sessions,
        )
        self.scheduler.add_daily(
            JOB_ROLLUP,
            time(hour=self.tracking.rollup_hour_utc, tzinfo=UTC),
            self.aggregate_rollups,
        )

        self._flush_lock = asyncio.Lock()
        self._started = False

    # -------------------------------------------------------------------
    # Listener API (sync, event loop thread)
    # -------------------------------------------------------------------
    def record_source_start(
        self,
        user_id: int,
        activity_name: str,
        at: datetime | None = None,
        source: str | None = None,
    ) -> bool:
        """A source started claiming *user_id* plays *activity_name*."""
        return self.sources.record_start(user_id, activity_name, at or utcnow(), source)

    def record_source_stop(
        self,
        user_id: int,
        activity_name: str,
        at: datetime | None = None,
        source: str | None = None,
    ) -> bool:
        """A source stopped claiming *user_id* plays *activity_name*."""
        return self.sources.record_stop(user_id, activity_name, at or utcnow(), source)

    def has_active_source(
        self, user_id: int, activity_name: str, source: str | None = None,
    ) -> bool:
        return self.sources.has_active_source(user_id, activity_name, source)

    def active_labels(self, user_id: int, source: str | None = None) -> list[str]:
        return self.sources.active_labels(user_id, source)

    # -------------------------------------------------------------------
    # Jobs (async; store work on a worker thread)
    # -------------------------------------------------------------------
    async def flush(self) -> FlushResult:
        """Drain the buffer and persist the batch.  Never raises.

        Events appended while the batch is being written stay in the
        buffer for the next call.  Flushes are serialized: a manual
        flush issued while the timer's flush is in flight waits for it,
        so batches reach the store strictly in drain order.
        """
        async with self._flush_lock:
            events = self.buffer.drain()
            if not events:
                return FlushResult()

            try:
                return await run_db(
                    flush_events, self.repo, self.resolver, events,
                    self.tracking.max_session_seconds,
                )
            except Exception:
                logger.exception("Buffer flush failed; %d event(s) dropped", len(events))
                return FlushResult(failed=len(events))

    async def sweep_stale_sessions(self) -> int:
        return await run_db(
            session_service.sweep_stale_sessions,
            self.repo,
            None,
            self.tracking.max_session_seconds,
        )

    async def aggregate_rollups(self) -> dict[str, int]:
        return await run_db(
            rollup_service.aggregate_rollups,
            self.repo,
            None,
            self.tracking.rollup_lookback_hours,
        )

    async def recover_orphaned_sessions(self) -> dict[str, int]:
        return await run_db(
            session_service.close_orphaned_sessions,
            self.repo,
            None,
            self.tracking.max_session_seconds,
        )

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Close orphaned sessions, then start the flush/sweep/rollup jobs.

        Recovery errors propagate; the scheduler is not started in that
        case so nothing gets flushed on top of an unrecovered store.
        """
        if self._started:
            return
        await self.recover_orphaned_sessions()
        self.scheduler.start()
        self._started = True
        logger.info(
            "Game activity tracking started (flush every %ds, sweep every %d min, "
            "rollup daily at %02d:00 UTC)",
            self.tracking.flush_interval_seconds,
            self.tracking.sweep_interval_minutes,
            self.tracking.rollup_hour_utc,
        )

    def shutdown(self) -> None:
        """Stop all jobs and forget in-memory state.  Does not flush."""
        self.scheduler.stop()
        dropped = self.buffer.clear()
        self.sources.clear()
        self.resolver.clear()
        self._started = False

        if dropped:
            logger.warning("Shutdown discarded %d unflushed activity event(s)", dropped)
        logger.info("Game activity tracking stopped")

    # -------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------
    def stats(self) -> dict:
        """In-memory state summary (store-side counts: ``get_session_stats``)."""
        return {
            "started": self._started,
            "active_pairs": len(self.sources),
            "buffered_events": len(self.buffer),
            "cached_names": len(self.resolver),
            "jobs": self.scheduler.status(),
        }
