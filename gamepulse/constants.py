"""
gamepulse.constants — Shared Constants & Helpers
=================================================

Single source of truth for tracking limits, job cadences, source tags and
the small UTC helpers every layer needs.  Import from here instead of
duplicating in services, cogs, and tests.
"""

from __future__ import annotations

from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Session limits
# ---------------------------------------------------------------------------
MAX_SESSION_SECONDS = 24 * 60 * 60  # 24h cap on any single session

# ---------------------------------------------------------------------------
# Job cadences
# ---------------------------------------------------------------------------
FLUSH_INTERVAL_SECONDS = 30
SWEEP_INTERVAL_MINUTES = 15
ROLLUP_HOUR_UTC = 5           # daily rollup fires at 05:00 UTC
ROLLUP_LOOKBACK_HOURS = 48    # wide window so late closes are still folded

# ---------------------------------------------------------------------------
# Signal sources
# ---------------------------------------------------------------------------
SOURCE_PRESENCE = "presence"
SOURCE_VOICE = "voice"
DEFAULT_SOURCE = SOURCE_PRESENCE


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime.

    SQLite hands ``DateTime(timezone=True)`` columns back naive; every value
    we write is UTC, so a naive read is UTC too.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds from *start* to *end*, floored and never negative."""
    delta = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return max(0, int(delta))
