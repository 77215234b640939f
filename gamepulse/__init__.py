"""
GamePulse — Game Activity Tracking for Discord Communities
===========================================================
Turns noisy "user X is playing game Y" signals from Discord Rich Presence
and voice channels into clean play sessions, then folds those sessions
into day / week / month playtime rollups.

Package layout::

    gamepulse/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Tracking constants + UTC helpers
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (sessions, rollups, games)
    │   └── repository.py  # The narrow store surface used by the engine
    ├── engine/
    │   ├── events.py      # Buffered open/close event records
    │   ├── buffer.py      # In-memory event buffer
    │   ├── sources.py     # Multi-source dedup tracker
    │   ├── resolver.py    # Activity name → game ID resolution + cache
    │   └── scheduler.py   # tasks.Loop interval / daily job registry
    ├── services/
    │   ├── flush_service.py    # Buffer → session rows
    │   ├── session_service.py  # Stale sweep, orphan recovery, stats
    │   ├── rollup_service.py   # Sessions → additive rollups
    │   └── activity_service.py # GameActivityService (owns everything)
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        └── cogs/
            └── activity.py  # Presence + voice listeners
"""

__version__ = "0.1.0"
