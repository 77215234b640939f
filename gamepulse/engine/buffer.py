"""
gamepulse.engine.buffer — In-Memory Event Buffer
=================================================

Ordered list of pending open/close events.  Appends come from presence and
voice listeners on the event loop; the flush pipeline takes the whole list
in one :meth:`EventBuffer.drain` call.  Because drain swaps the list out in
a single step on the loop thread, anything appended afterwards lands in a
fresh list and belongs to the *next* flush.
"""

from __future__ import annotations

from gamepulse.engine.events import BufferedEvent


class EventBuffer:
    """Append-only queue of :data:`BufferedEvent` records, drained whole."""

    def __init__(self) -> None:
        self._events: list[BufferedEvent] = []

    def append(self, event: BufferedEvent) -> None:
        self._events.append(event)

    def drain(self) -> list[BufferedEvent]:
        """Return every pending event and start a new, empty buffer."""
        events, self._events = self._events, []
        return events

    def clear(self) -> int:
        """Discard pending events.  Returns how many were dropped."""
        return len(self.drain())

    def snapshot(self) -> list[BufferedEvent]:
        """Copy of the pending events, oldest first (diagnostics/tests)."""
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)
