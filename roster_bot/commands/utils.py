from __future__ import annotations

import discord

from ..core.config_store import ConfigStore
from ..core.models import ChannelDefinition, ChannelType, Season


def is_admin(interaction: discord.Interaction, store: ConfigStore) -> bool:
    """Administrators of the guild and maintainers in ``assignments.json``."""
    user = interaction.user
    perms = getattr(user, "guild_permissions", None)
    if perms is not None and perms.administrator:
        return True
    return store.is_maintainer(getattr(user, "name", ""))


async def ensure_season_category(
    guild: discord.Guild, season: Season
) -> tuple[list[str], list[str]]:
    """
    Ensure the season's member role, category and channels exist in ``guild``.
    Lookups are by name; nothing existing is modified.
    Returns ``(created, existing)`` name lists.
    """
    created: list[str] = []
    existing: list[str] = []

    if discord.utils.get(guild.roles, name=season.member_role_name) is None:
        await guild.create_role(name=season.member_role_name)
        created.append(f"role {season.member_role_name}")
    else:
        existing.append(f"role {season.member_role_name}")

    category = discord.utils.get(guild.categories, name=season.category_name)
    if category is None:
        category = await guild.create_category(season.category_name)
        created.append(f"category {season.category_name}")
    else:
        existing.append(f"category {season.category_name}")

    for definition in _flatten(season.channel_definitions):
        present = discord.utils.get(category.channels, name=definition.name)
        if present is not None:
            existing.append(f"channel {definition.name}")
            continue
        if definition.channel_type is ChannelType.VOICE:
            await category.create_voice_channel(definition.name)
        else:
            await category.create_text_channel(definition.name)
        created.append(f"channel {definition.name}")
    return created, existing


def _flatten(definitions: list[ChannelDefinition]) -> list[ChannelDefinition]:
    # Nested categories are not supported by Discord; children join the season category.
    flat: list[ChannelDefinition] = []
    for definition in definitions:
        if definition.channel_type is not ChannelType.CATEGORY:
            flat.append(definition)
        flat.extend(_flatten(definition.children))
    return flat
