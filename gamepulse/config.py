"""
gamepulse.config — YAML Configuration Loader
=============================================

**Why this file exists:**
This module reads ``config.yaml`` for infrastructure settings (Discord
identity, bot prefix) and the tracking knobs that control how often the
activity engine flushes, sweeps and rolls up.  Secrets (``DATABASE_URL``,
``DISCORD_TOKEN``) stay in ``.env``.

Usage::

    from gamepulse.config import load_config

    cfg = load_config()                      # reads ./config.yaml by default
    print(cfg.community_name)                # "Raid Night"
    print(cfg.tracking.flush_interval_seconds)  # 30
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from gamepulse.constants import (
    DEFAULT_SOURCE,
    FLUSH_INTERVAL_SECONDS,
    MAX_SESSION_SECONDS,
    ROLLUP_HOUR_UTC,
    ROLLUP_LOOKBACK_HOURS,
    SWEEP_INTERVAL_MINUTES,
)


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TrackingConfig:
    """Timing and limits for the game activity engine.

    Every field has a default so the whole ``tracking:`` block may be
    omitted from ``config.yaml``.
    """

    flush_interval_seconds: int = FLUSH_INTERVAL_SECONDS
    sweep_interval_minutes: int = SWEEP_INTERVAL_MINUTES
    rollup_hour_utc: int = ROLLUP_HOUR_UTC
    max_session_seconds: int = MAX_SESSION_SECONDS
    rollup_lookback_hours: int = ROLLUP_LOOKBACK_HOURS
    default_source: str = DEFAULT_SOURCE


@dataclass(frozen=True, slots=True)
class GamePulseConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    bot_prefix: str
    guild_id: int | None = None  # Primary guild snowflake (optional scoping)

    tracking: TrackingConfig = field(default_factory=TrackingConfig)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def _load_tracking(raw: dict | None) -> TrackingConfig:
    """Build a :class:`TrackingConfig` from the optional ``tracking:`` block."""
    if not raw:
        return TrackingConfig()

    defaults = TrackingConfig()
    rollup_hour = int(raw.get("rollup_hour_utc", defaults.rollup_hour_utc))
    if not 0 <= rollup_hour <= 23:
        raise ValueError(f"tracking.rollup_hour_utc must be 0-23, got {rollup_hour}")

    return TrackingConfig(
        flush_interval_seconds=int(
            raw.get("flush_interval_seconds", defaults.flush_interval_seconds)
        ),
        sweep_interval_minutes=int(
            raw.get("sweep_interval_minutes", defaults.sweep_interval_minutes)
        ),
        rollup_hour_utc=rollup_hour,
        max_session_seconds=int(
            raw.get("max_session_seconds", defaults.max_session_seconds)
        ),
        rollup_lookback_hours=int(
            raw.get("rollup_lookback_hours", defaults.rollup_lookback_hours)
        ),
        default_source=str(raw.get("default_source", defaults.default_source)),
    )


def load_config(path: str | Path = "config.yaml") -> GamePulseConfig:
    """Read *path* and return a :class:`GamePulseConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``tracking.rollup_hour_utc`` is outside 0-23.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return GamePulseConfig(
        community_name=raw["community_name"],
        bot_prefix=raw["bot_prefix"],
        guild_id=int(raw["guild_id"]) if raw.get("guild_id") else None,
        tracking=_load_tracking(raw.get("tracking")),
    )
