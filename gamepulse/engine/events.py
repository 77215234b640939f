"""
gamepulse.engine.events — Buffered Session Events
==================================================

The two records the source tracker appends to the event buffer.  Neither
is persisted as-is; the flush pipeline turns an open into a new session
row and a close into an update of the oldest matching open row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

__all__ = ["SessionOpenEvent", "SessionCloseEvent", "BufferedEvent"]


@dataclass(frozen=True, slots=True)
class SessionOpenEvent:
    """Intent to start a session for ``(user_id, activity_name)``."""

    user_id: int
    activity_name: str
    started_at: datetime
    type: Literal["open"] = "open"


@dataclass(frozen=True, slots=True)
class SessionCloseEvent:
    """Intent to end the oldest open session for ``(user_id, activity_name)``."""

    user_id: int
    activity_name: str
    ended_at: datetime
    type: Literal["close"] = "close"


BufferedEvent = SessionOpenEvent | SessionCloseEvent
