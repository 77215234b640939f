"""
gamepulse.bot.core — Bot Instance & Cog Loader
===============================================

Defines :class:`GamePulseBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``), DB engine (``bot.engine``) and
   the :class:`GameActivityService` (``bot.activity``) so every Cog can
   reach them via ``self.bot.*``.
2. Loads every Cog listed in :data:`EXTENSIONS` on startup.

The activity service's lifecycle is owned by the ``activity`` cog:
``cog_load`` runs orphan recovery and starts the jobs, ``cog_unload``
shuts them down.
"""

from __future__ import annotations

import logging

import discord
from discord.ext import commands
from sqlalchemy import Engine

from gamepulse.config import GamePulseConfig
from gamepulse.services.activity_service import GameActivityService

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "gamepulse.bot.cogs.activity",
]


class GamePulseBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`GamePulseConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    """

    def __init__(self, cfg: GamePulseConfig, engine: Engine) -> None:
        # Privileged intents (must enable in Developer Portal):
        #   GUILD_PRESENCES: Rich Presence "Playing …" updates
        #   GUILD_MEMBERS:   member cache so presence updates resolve
        intents = discord.Intents.default()
        intents.presences = True
        intents.members = True

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.community_name} — game activity tracking",
        )

        self.cfg = cfg
        self.engine = engine
        self.activity = GameActivityService(engine, cfg.tracking)

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all Cog extensions before connecting to Discord.

        A Cog that fails to load is logged and skipped.
        """
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)
        logger.info("Tracking state: %s", self.activity.stats())

    def tracks_guild(self, guild_id: int) -> bool:
        """Whether events from *guild_id* should be tracked."""
        return self.cfg.guild_id is None or self.cfg.guild_id == guild_id
