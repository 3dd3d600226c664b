"""Registration of slash commands for the bot."""

from __future__ import annotations

import io
import logging

import discord
from discord.ext import commands

from .. import messages
from ..errors import BotError, ConfigNotFoundError, NoStagedConfigError
from ..logging_config import recent_logs
from ..services import Services
from ..ui.modals import VerifyModal
from ..ui.views import StagingView, diff_embed, format_changes
from .utils import ensure_season_category, is_admin

log = logging.getLogger("roster.commands")


def register_commands(bot: commands.Bot, services: Services) -> None:
    """Register the verification and configuration commands on ``bot.tree``."""
    tree = bot.tree
    store = services.store
    staging = services.staging

    async def require_admin(interaction: discord.Interaction) -> bool:
        if is_admin(interaction, store):
            return True
        await interaction.response.send_message(
            "This command is restricted to administrators.", ephemeral=True
        )
        return False

    # ------------------------------------------------------------------
    # Member commands
    # ------------------------------------------------------------------
    @tree.command(name="verify", description="Verify your identity with your user ID")
    @discord.app_commands.describe(user_id="The user ID you were given")
    async def verify(interaction: discord.Interaction, user_id: str | None = None) -> None:
        if not user_id:
            await interaction.response.send_modal(VerifyModal(services))
            return
        await interaction.response.defer(ephemeral=True)
        guild_ids = [interaction.guild.id] if interaction.guild else []
        reply = await services.verify(interaction.user.id, user_id, guild_ids)
        await interaction.followup.send(reply, ephemeral=True)

    @tree.command(name="status", description="Show your verification status")
    async def status(interaction: discord.Interaction) -> None:
        user = services.engine.get_verified_user(interaction.user.id)
        if user is None:
            await interaction.response.send_message(
                "You are not verified yet. Use `/verify`.", ephemeral=True
            )
            return
        await interaction.response.send_message(
            messages.status_message(user.display_name, user.verification_ids),
            ephemeral=True,
        )

    # ------------------------------------------------------------------
    # Admin: configuration
    # ------------------------------------------------------------------
    @tree.command(name="seasons", description="List loaded seasons")
    async def seasons(interaction: discord.Interaction) -> None:
        if not await require_admin(interaction):
            return
        all_seasons = store.all_seasons()
        if not all_seasons:
            await interaction.response.send_message("No seasons loaded.", ephemeral=True)
            return
        embed = discord.Embed(title="Seasons")
        for season in all_seasons[:25]:
            verified = len(services.user_db.users_by_season(season.season_id))
            embed.add_field(
                name=f"{season.display_name} ({season.season_id})",
                value=(
                    f"{'Active' if season.active else 'Inactive'}\n"
                    f"Roster: {season.user_count()} | Verified: {verified}\n"
                    f"Role: {season.member_role_name}"
                ),
                inline=False,
            )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def reply_with_diff(interaction: discord.Interaction, headline: str) -> None:
        view = StagingView(services, staging.generation)
        await interaction.followup.send(
            headline,
            embed=diff_embed(staging.get_diff(), staging.staged_by),
            view=view,
            ephemeral=True,
        )

    @tree.command(name="stage_users", description="Stage a season roster (users.json)")
    @discord.app_commands.describe(
        season_id="Season identifier, e.g. 2025E",
        file="JSON roster file",
    )
    async def stage_users(
        interaction: discord.Interaction, season_id: str, file: discord.Attachment
    ) -> None:
        if not await require_admin(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        data = await file.read()
        try:
            count = staging.stage_season_users(season_id, data, str(interaction.user))
        except BotError as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return
        await reply_with_diff(interaction, f"Staged {count} users for season `{season_id}`.")

    @tree.command(name="stage_roles", description="Stage special member assignments")
    @discord.app_commands.describe(file="JSON assignments file")
    async def stage_roles(interaction: discord.Interaction, file: discord.Attachment) -> None:
        if not await require_admin(interaction):
            return
        await interaction.response.defer(ephemeral=True)
        data = await file.read()
        try:
            count = staging.stage_special_members(data, str(interaction.user))
        except BotError as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return
        await reply_with_diff(interaction, f"Staged assignments for {count} roles.")

    @tree.command(name="staged", description="Show staged configuration")
    async def staged(interaction: discord.Interaction) -> None:
        if not await require_admin(interaction):
            return
        if not staging.has_staged():
            await interaction.response.send_message("Nothing staged.", ephemeral=True)
            return
        await interaction.response.send_message(
            staging.summary(),
            embed=diff_embed(staging.get_diff(), staging.staged_by),
            ephemeral=True,
        )

    @tree.command(name="commit_config", description="Commit staged configuration")
    async def commit_config(interaction: discord.Interaction) -> None:
        if not await require_admin(interaction):
            return
        try:
            changes = staging.commit()
        except NoStagedConfigError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return
        await interaction.response.send_message(format_changes(changes), ephemeral=True)

    @tree.command(name="cancel_config", description="Discard staged configuration")
    async def cancel_config(interaction: discord.Interaction) -> None:
        if not await require_admin(interaction):
            return
        staging.clear()
        await interaction.response.send_message(
            "Staged configuration discarded.", ephemeral=True
        )

    @tree.command(name="export_config", description="Download a configuration file")
    @discord.app_commands.describe(
        config_type="season, assignments, global_roles or permissions",
        name="Season id when exporting a season",
    )
    async def export_config(
        interaction: discord.Interaction, config_type: str, name: str | None = None
    ) -> None:
        if not await require_admin(interaction):
            return
        try:
            filename, data = store.export_config(config_type, name)
        except ConfigNotFoundError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return
        await interaction.response.send_message(
            f"`{filename}`",
            file=discord.File(io.BytesIO(data), filename=filename.rsplit("/", 1)[-1]),
            ephemeral=True,
        )

    @tree.command(name="export_database", description="Download the user database")
    async def export_database(interaction: discord.Interaction) -> None:
        if not await require_admin(interaction):
            return
        data = services.engine.export_database()
        await interaction.response.send_message(
            f"{services.user_db.user_count()} tracked users",
            file=discord.File(io.BytesIO(data), filename="user_database.json"),
            ephemeral=True,
        )

    @tree.command(name="reload_config", description="Reload configuration from disk")
    async def reload_config(interaction: discord.Interaction) -> None:
        if not await require_admin(interaction):
            return
        try:
            store.load_all()
        except BotError as exc:
            log.error("Reload failed: %s", exc)
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return
        lines = [f"• `{path}`: {summary}" for path, summary in store.config_files()]
        await interaction.response.send_message(
            "Configuration reloaded.\n" + "\n".join(lines), ephemeral=True
        )

    @tree.command(
        name="setup_season",
        description="Create the role, category and channels of a season",
    )
    @discord.app_commands.describe(season_id="Season identifier")
    async def setup_season(interaction: discord.Interaction, season_id: str) -> None:
        if not await require_admin(interaction):
            return
        season = store.get_season(season_id)
        if season is None:
            await interaction.response.send_message(
                f"Season `{season_id}` is not loaded.", ephemeral=True
            )
            return
        await interaction.response.defer(ephemeral=True)
        created, existing = await ensure_season_category(interaction.guild, season)
        await interaction.followup.send(
            f"**Created:** {', '.join(created) or '(nothing)'}\n"
            f"**Already present:** {', '.join(existing) or '(nothing)'}",
            ephemeral=True,
        )

    @tree.command(name="logs", description="Show recent bot log lines")
    @discord.app_commands.describe(limit="Number of lines (max 50)")
    async def logs(interaction: discord.Interaction, limit: int = 20) -> None:
        if not await require_admin(interaction):
            return
        lines = recent_logs(max(1, min(limit, 50)))
        text = "\n".join(lines) or "(no log lines captured)"
        await interaction.response.send_message(
            f"```\n{text[-1900:]}\n```", ephemeral=True
        )
