"""The long-lived service object shared by every front end."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from . import messages
from .adapters.base import RoleApplier
from .adapters.discord import DiscordAdapter
from .config import Settings
from .core.config_store import ConfigStore
from .core.staging import StagingArea
from .core.user_database import UserDatabase
from .core.verification import VerificationEngine, VerificationResult
from .errors import StateSaveError

log = logging.getLogger("roster.services")


@dataclass
class Services:
    settings: Settings
    store: ConfigStore
    staging: StagingArea
    user_db: UserDatabase
    engine: VerificationEngine
    applier: RoleApplier | None = None

    def save_database(self) -> bool:
        """Persist the user database; failures are logged and leave it dirty."""
        try:
            self.engine.save_database(self.settings.state_path)
        except StateSaveError:
            log.exception("Could not save user database")
            return False
        return True

    async def verify(
        self, user_id: int | str, claimed_id: str, guild_ids: list[int | str]
    ) -> str:
        """Run a verification end to end and return the reply for the user."""
        result = self.engine.attempt_verification(user_id, claimed_id)
        if not result.success:
            return messages.error_message(result.error or "Verification failed.")
        applied = await self.finish_verification(guild_ids, user_id, result)
        return messages.success_message(
            result.display_name, result.season_id, applied or result.roles_to_assign
        )

    async def finish_verification(
        self, guild_ids: list[int | str], user_id: int | str, result: VerificationResult
    ) -> list[str]:
        """Apply a successful result on each guild, record the roles and save.

        Returns the roles that were applied on at least one guild.
        """
        if not result.success:
            return []
        applied: list[str] = []
        if self.applier is not None:
            for guild_id in guild_ids:
                try:
                    roles = await self.applier.apply_verification(
                        str(guild_id), str(user_id), result
                    )
                except httpx.HTTPError:
                    log.exception("Could not apply roles on guild %s", guild_id)
                    continue
                applied.extend(r for r in roles if r not in applied)
        if applied:
            self.user_db.record_roles(user_id, applied)
        self.save_database()
        return applied


def build_services(settings: Settings, applier: RoleApplier | None = None) -> Services:
    """Load configuration and state, and wire the core components together."""
    store = ConfigStore(settings.data_path)
    store.load_all()
    user_db = UserDatabase.load(settings.state_path)
    if applier is None and settings.token:
        applier = DiscordAdapter(settings.token)
    return Services(
        settings=settings,
        store=store,
        staging=StagingArea(store),
        user_db=user_db,
        engine=VerificationEngine(store, user_db),
        applier=applier,
    )
