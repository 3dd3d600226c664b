"""Discord bot wiring for roster verification.

The bot itself holds no state of its own; everything lives on the
:class:`~roster_bot.services.Services` object passed in at construction.
"""

from __future__ import annotations

from typing import Any

import discord
from discord.ext import commands, tasks

from . import messages
from .logging_config import setup_logging
from .services import Services


class RosterBot(commands.Bot):
    """``discord.py`` bot that verifies members against season rosters."""

    cleanup_task: tasks.Loop | None

    def __init__(self, services: Services, **kwargs: Any) -> None:  # pragma: no cover - trivial
        """Initialize the bot with the intents needed for joins and DM replies."""
        intents = kwargs.pop("intents", None) or discord.Intents.default()
        intents.members = True
        intents.dm_messages = True
        # DM replies carry the user id, so message content is required.
        intents.message_content = True
        super().__init__(
            command_prefix=kwargs.pop("command_prefix", "!"),
            intents=intents,
        )
        self.services = services
        self.log = setup_logging()
        self.cleanup_task = None

    async def setup_hook(self) -> None:
        """Start pending-verification cleanup and sync slash commands."""
        self.cleanup_task = tasks.loop(minutes=10.0, reconnect=True)(_cleanup_pending)
        self.cleanup_task.start(self)

        tree = getattr(self, "tree", None)
        if tree is not None:  # pragma: no cover - exercised in integration
            guild_id = self.services.settings.guild_id
            if guild_id:
                guild = discord.Object(id=guild_id)
                tree.copy_global_to(guild=guild)
                await tree.sync(guild=guild)
            await tree.sync()

        await super().setup_hook()

    async def on_ready(self) -> None:  # pragma: no cover - requires discord
        """Log a short confirmation once the bot connected successfully."""
        await self.change_presence(activity=discord.Game(name="/verify"))
        self.log.info(
            "Logged in as %s (%s)",
            self.user,
            self.user.id if self.user else "?",
        )

    async def on_member_join(self, member: discord.Member) -> None:
        if member.bot:
            return
        engine = self.services.engine
        restored = engine.restore_verification(member.id)
        if restored is not None:
            self.log.info("Verified user %s rejoined guild %s", member.id, member.guild.id)
            await self.services.finish_verification([member.guild.id], member.id, restored)
            try:
                dm = await member.create_dm()
                await dm.send(messages.welcome_back_message(restored.display_name))
            except discord.HTTPException:
                self.log.warning("Could not DM welcome back to %s", member.id)
            return

        await self._post_welcome(member)
        try:
            dm = await member.create_dm()
            engine.start_verification(member.id, dm.id, member.guild.id)
            await dm.send(messages.verification_message(member.display_name))
        except discord.HTTPException:
            self.log.warning("Could not DM %s; they can use /verify instead", member.id)

    async def _post_welcome(self, member: discord.Member) -> None:
        """Greet ``member`` in the guild's ``#welcome`` channel, if there is one."""
        channel = next(
            (c for c in member.guild.text_channels if c.name.lower() == "welcome"),
            None,
        )
        if channel is None:
            return
        try:
            await channel.send(messages.welcome_message(member.display_name))
        except discord.HTTPException:
            self.log.warning(
                "Could not post welcome for %s in guild %s", member.id, member.guild.id
            )

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is not None:
            return
        engine = self.services.engine
        pending = engine.get_pending(message.author.id)
        if pending is None:
            return
        guild_ids = (
            [pending.guild_id] if pending.guild_id else [g.id for g in self.guilds]
        )
        reply = await self.services.verify(
            message.author.id, message.content, guild_ids
        )
        await message.channel.send(reply)


async def _cleanup_pending(bot: RosterBot) -> None:
    """Background task dropping pending verifications older than an hour."""
    bot.services.engine.cleanup_stale_pending()


__all__ = ["RosterBot", "_cleanup_pending"]
