from __future__ import annotations

import discord

from ..services import Services


class VerifyModal(discord.ui.Modal, title="Verify Your Identity"):
    def __init__(self, services: Services) -> None:
        super().__init__()
        self.services = services
        self.id_input = discord.ui.TextInput(
            label="Your user ID",
            placeholder="5342a99-5a43-112g-d771-s34233v38g11",
            required=True,
            max_length=100,
        )
        self.add_item(self.id_input)

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        guild_ids = [interaction.guild.id] if interaction.guild else []
        reply = await self.services.verify(
            interaction.user.id, self.id_input.value, guild_ids
        )
        await interaction.followup.send(reply, ephemeral=True)
