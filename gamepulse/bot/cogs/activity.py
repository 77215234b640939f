"""
gamepulse.bot.cogs.activity — Presence & Voice Game Signals
============================================================

Translates Discord gateway events into source claims on the activity
engine:

- ``on_presence_update`` — the ``presence`` source follows the member's
  "Playing …" activities: new names start, vanished names stop.  A
  vanished name also releases the ``voice`` claim on it, so quitting a
  game while staying in voice ends the session.
- ``on_voice_state_update`` — the ``voice`` source claims whatever the
  member is playing when they join voice and releases everything it
  claimed when they leave.

Overlaps between the two sources are collapsed by the engine, so a member
playing Halo in voice is one session, not two.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from gamepulse.constants import SOURCE_PRESENCE, SOURCE_VOICE, utcnow

if TYPE_CHECKING:
    from gamepulse.bot.core import GamePulseBot

logger = logging.getLogger(__name__)


def playing_names(member: discord.Member) -> set[str]:
    """Names of the member's current *Playing* activities."""
    return {
        activity.name
        for activity in (member.activities or ())
        if activity.type == discord.ActivityType.playing and activity.name
    }


class Activity(commands.Cog, name="Activity"):
    """Feeds presence and voice signals into the GameActivityService."""

    def __init__(self, bot: GamePulseBot) -> None:
        self.bot = bot
        self.service = bot.activity

    async def cog_load(self) -> None:
        """Recover orphaned sessions and start the flush/sweep/rollup jobs."""
        await self.service.start()

    async def cog_unload(self) -> None:
        self.service.shutdown()

    # -------------------------------------------------------------------
    # Presence
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_presence_update(
        self, before: discord.Member, after: discord.Member,
    ) -> None:
        if after.bot or not self.bot.tracks_guild(after.guild.id):
            return
        try:
            self._handle_presence(before, after)
        except Exception:
            logger.exception("Error processing presence update for user %s", after.id)

    def _handle_presence(self, before: discord.Member, after: discord.Member) -> None:
        old, new = playing_names(before), playing_names(after)
        if old == new:
            return

        now = utcnow()
        for name in sorted(new - old):
            self.service.record_source_start(after.id, name, now, SOURCE_PRESENCE)
        for name in sorted(old - new):
            # Voice only claims games the member is actually playing
            if self.service.has_active_source(after.id, name, SOURCE_VOICE):
                self.service.record_source_stop(after.id, name, now, SOURCE_VOICE)
            self.service.record_source_stop(after.id, name, now, SOURCE_PRESENCE)
        logger.debug(
            "Presence %s: started=%s stopped=%s",
            after.id, sorted(new - old), sorted(old - new),
        )

    # -------------------------------------------------------------------
    # Voice
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        if member.bot or not self.bot.tracks_guild(member.guild.id):
            return
        try:
            self._handle_voice(member, before, after)
        except Exception:
            logger.exception("Error processing voice state update for user %s", member.id)

    def _handle_voice(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        now = utcnow()

        # --- JOIN (was not in a channel, now is) ---
        if before.channel is None and after.channel is not None:
            for name in sorted(playing_names(member)):
                self.service.record_source_start(member.id, name, now, SOURCE_VOICE)

        # --- LEAVE (was in a channel, now is not) ---
        elif before.channel is not None and after.channel is None:
            for name in self.service.active_labels(member.id, SOURCE_VOICE):
                self.service.record_source_stop(member.id, name, now, SOURCE_VOICE)

        # Moves and mute/deaf changes keep the voice claim as-is.


async def setup(bot: GamePulseBot) -> None:
    await bot.add_cog(Activity(bot))
