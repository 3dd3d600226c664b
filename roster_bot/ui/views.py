from __future__ import annotations

import logging

import discord

from ..core.staging import ConfigChange, ConfigDiff
from ..errors import NoStagedConfigError
from ..services import Services

log = logging.getLogger("roster.ui")


class StagingView(discord.ui.View):
    """Commit/Cancel buttons attached to a staging reply.

    ``token`` is the staging generation at the time the reply was sent; the
    timeout only discards staged content if nothing was staged since.
    """

    def __init__(self, services: Services, token: int) -> None:
        super().__init__(timeout=services.settings.staging_timeout)
        self.services = services
        self.token = token

    @discord.ui.button(label="Commit", style=discord.ButtonStyle.success)
    async def commit(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            changes = self.services.staging.commit()
        except NoStagedConfigError as exc:
            await interaction.followup.send(str(exc), ephemeral=True)
            return
        self.stop()
        await interaction.followup.send(format_changes(changes), ephemeral=True)

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.danger)
    async def cancel(self, interaction: discord.Interaction, button: discord.ui.Button) -> None:
        self.services.staging.clear()
        self.stop()
        await interaction.response.send_message(
            "Staged configuration discarded.", ephemeral=True
        )

    async def on_timeout(self) -> None:
        if self.services.staging.clear_if_unchanged(self.token):
            log.info("Staged configuration expired without commit")


def format_changes(changes: list[ConfigChange]) -> str:
    lines = []
    for c in changes:
        if c.ok:
            lines.append(f"✅ {c.entity_type} ({c.entity_name}): {c.details}")
        else:
            lines.append(f"❌ {c.entity_type} ({c.entity_name}): {c.error} (still staged)")
    return "\n".join(lines) or "Nothing was committed."


def diff_embed(diff: ConfigDiff, staged_by: str | None = None) -> discord.Embed:
    e = discord.Embed(
        title="Staged Configuration",
        description=diff.format_for_display()[:4000],
        color=discord.Color.blurple(),
    )
    if staged_by:
        e.set_footer(text=f"Staged by {staged_by}")
    return e
