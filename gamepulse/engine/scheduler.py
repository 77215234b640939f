"""
gamepulse.engine.scheduler — Interval & Daily Job Runner
=========================================================

A thin registry over ``discord.ext.tasks`` loops, owned by the activity
service so the flush timer, the stale-session sweep and the daily rollup
run the same way inside the bot, a plain script, or a test.  No bot or
gateway connection is needed; a running event loop is.

- ``add_interval`` jobs run once when started, then every *seconds*.
- ``add_daily`` jobs run at a UTC wall-clock time each day.

A job that raises is logged and counted; its loop keeps going and the
next attempt happens on the next tick, not immediately.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, time

from discord.ext import tasks

from gamepulse.constants import utcnow

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[object]]


@dataclass
class JobStatus:
    runs: int = 0
    failures: int = 0
    last_run: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict:
        return {
            "runs": self.runs,
            "failures": self.failures,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
        }


@dataclass
class _Job:
    name: str
    func: JobFunc
    loop: tasks.Loop | None = None
    status: JobStatus = field(default_factory=JobStatus)


class Scheduler:
    """Runs registered coroutine functions on ``tasks.Loop`` instances."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._jobs: dict[str, _Job] = {}
        self._running = False

    # -------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------
    def add_interval(self, name: str, seconds: float, func: JobFunc) -> None:
        if seconds <= 0:
            raise ValueError(f"Interval for job {name!r} must be positive, got {seconds}")
        self._add(name, func, tasks.loop(seconds=seconds))

    def add_daily(self, name: str, at: time, func: JobFunc) -> None:
        if at.tzinfo is None:
            at = at.replace(tzinfo=UTC)
        self._add(name, func, tasks.loop(time=at))

    def _add(self, name: str, func: JobFunc, make_loop: Callable) -> None:
        if name in self._jobs:
            raise ValueError(f"Job {name!r} is already registered")
        job = _Job(name=name, func=func)

        async def _tick() -> None:
            await self._execute(job)

        job.loop = make_loop(_tick)
        self._jobs[name] = job

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start every registered loop.  Must be called from a running event loop."""
        if self._running:
            return
        for job in self._jobs.values():
            if not job.loop.is_running():
                job.loop.start()
        self._running = True
        logger.info("Scheduler started: %s", ", ".join(self._jobs) or "(no jobs)")

    def stop(self) -> None:
        """Cancel every loop.  A job mid-run is cancelled at its next await."""
        if not self._running:
            return
        for job in self._jobs.values():
            job.loop.cancel()
        self._running = False
        logger.info("Scheduler stopped")

    # -------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------
    async def _execute(self, job: _Job) -> None:
        job.status.last_run = self._clock()
        try:
            await job.func()
        except Exception as exc:
            job.status.failures += 1
            job.status.last_error = repr(exc)
            logger.exception("Scheduled job %s failed", job.name, extra={"task": job.name})
        else:
            job.status.runs += 1
            job.status.last_error = None

    async def run_now(self, name: str) -> None:
        """Run job *name* once, out of band, with the usual error handling."""
        await self._execute(self._jobs[name])

    def status(self) -> dict[str, dict]:
        return {name: job.status.to_dict() for name, job in self._jobs.items()}
