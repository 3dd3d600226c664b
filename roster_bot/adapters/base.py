"""Role applier interface: turns verification results into Discord state."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from ..core.verification import VerificationResult

log = logging.getLogger("roster.roles")

NICKNAME_LIMIT = 32


class RoleApplier(ABC):
    """Abstract applier for role and nickname changes on a guild."""

    @abstractmethod
    async def list_roles(self, guild_id: str) -> dict[str, str]:
        """Return the guild's roles as ``name -> role id``."""

    @abstractmethod
    async def add_member_role(self, guild_id: str, user_id: str, role_id: str) -> None:
        """Give ``role_id`` to the member ``user_id``."""

    @abstractmethod
    async def set_nickname(self, guild_id: str, user_id: str, nickname: str) -> None:
        """Change the member's guild nickname."""

    async def close(self) -> None:
        """Release any underlying connections."""

    async def apply_verification(
        self, guild_id: str, user_id: str, result: VerificationResult
    ) -> list[str]:
        """Assign ``result.roles_to_assign`` and the nickname to a member.

        Roles that do not exist on the guild are logged and skipped. Returns the
        names of the roles that were applied.
        """
        if not result.success:
            return []
        guild_roles = await self.list_roles(guild_id)
        applied: list[str] = []
        for name in result.roles_to_assign:
            role_id = guild_roles.get(name)
            if role_id is None:
                log.warning("Role '%s' does not exist on guild %s; skipping", name, guild_id)
                continue
            await self.add_member_role(guild_id, user_id, role_id)
            applied.append(name)
        if result.display_name:
            await self.set_nickname(
                guild_id, user_id, result.display_name[:NICKNAME_LIMIT]
            )
        log.info("Applied roles %s to user %s on guild %s", applied, user_id, guild_id)
        return applied
