"""Discord implementation of :class:`~roster_bot.adapters.base.RoleApplier`.

Talks to Discord's HTTP API directly with :mod:`httpx`, so roles can be applied
from code paths that have a guild id but no gateway objects at hand.
"""

from __future__ import annotations

from typing import Any

import httpx

from .base import RoleApplier


class DiscordAdapter(RoleApplier):
    """Role applier that sends requests directly to the Discord HTTP API."""

    api_base = "https://discord.com/api/v10"

    def __init__(self, token: str, client: httpx.AsyncClient | None = None) -> None:
        """Store authentication ``token`` and optional HTTP ``client``."""
        self.token = token
        self.client = client or httpx.AsyncClient()

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bot {self.token}"}

    # ------------------------------------------------------------------
    async def list_roles(self, guild_id: str) -> dict[str, str]:
        url = f"{self.api_base}/guilds/{guild_id}/roles"
        response = await self.client.get(url, headers=self._headers)
        response.raise_for_status()
        data: list[dict[str, Any]] = response.json()
        return {str(role["name"]): str(role["id"]) for role in data}

    async def add_member_role(self, guild_id: str, user_id: str, role_id: str) -> None:
        url = f"{self.api_base}/guilds/{guild_id}/members/{user_id}/roles/{role_id}"
        response = await self.client.put(url, headers=self._headers)
        response.raise_for_status()

    async def set_nickname(self, guild_id: str, user_id: str, nickname: str) -> None:
        """Set the member's nickname.

        Parameters
        ----------
        guild_id:
            Identifier of the Discord guild.
        user_id:
            Identifier of the member.
        nickname:
            New nickname; Discord rejects values longer than 32 characters.

        """
        url = f"{self.api_base}/guilds/{guild_id}/members/{user_id}"
        response = await self.client.patch(
            url, json={"nick": nickname}, headers=self._headers
        )
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying :class:`httpx.AsyncClient`."""
        await self.client.aclose()
