"""Binding Discord accounts to roster entries."""

from __future__ import annotations

import datetime
import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC
from enum import Enum
from pathlib import Path

from .config_store import ConfigStore
from .user_database import BindOutcome, TrackedUser, UserDatabase

log = logging.getLogger("roster.verification")

PENDING_MAX_AGE = 3600


def _now() -> int:
    return int(datetime.datetime.now(tz=UTC).timestamp())


class VerificationFailure(str, Enum):
    NOT_FOUND = "not_found"
    ID_IN_USE = "id_in_use"
    ALREADY_VERIFIED = "already_verified"


@dataclass
class VerificationResult:
    success: bool
    display_name: str = ""
    season_id: str | None = None
    roles_to_assign: list[str] = field(default_factory=list)
    error: str | None = None
    failure: VerificationFailure | None = None

    @classmethod
    def failed(
        cls, failure: VerificationFailure, error: str, **kwargs
    ) -> VerificationResult:
        return cls(success=False, error=error, failure=failure, **kwargs)


@dataclass
class PendingVerification:
    user_id: str
    channel_id: int | None = None
    guild_id: int | None = None
    started_at: int = 0


class VerificationEngine:
    """Resolve claimed verification ids and record successful bindings.

    The engine lock is held across the whole lookup, check and write sequence
    of :meth:`attempt_verification`, so two attempts for the same id never
    both succeed.
    """

    def __init__(self, store: ConfigStore, user_db: UserDatabase) -> None:
        self.store = store
        self.user_db = user_db
        self._lock = threading.RLock()
        self._pending: dict[str, PendingVerification] = {}

    # ------------------------------------------------------------------
    # Pending verifications
    # ------------------------------------------------------------------
    def start_verification(
        self,
        user_id: str | int,
        channel_id: int | None = None,
        guild_id: int | None = None,
    ) -> PendingVerification:
        pending = PendingVerification(str(user_id), channel_id, guild_id, _now())
        with self._lock:
            self._pending[pending.user_id] = pending
        log.debug("Started verification for user %s", user_id)
        return pending

    def is_pending(self, user_id: str | int) -> bool:
        with self._lock:
            return str(user_id) in self._pending

    def get_pending(self, user_id: str | int) -> PendingVerification | None:
        with self._lock:
            return self._pending.get(str(user_id))

    def cancel_verification(self, user_id: str | int) -> None:
        with self._lock:
            self._pending.pop(str(user_id), None)
        log.debug("Cancelled verification for user %s", user_id)

    def cleanup_stale_pending(self, max_age: int = PENDING_MAX_AGE) -> int:
        """Drop pending verifications older than ``max_age`` seconds."""
        cutoff = _now() - max_age
        with self._lock:
            stale = [k for k, p in self._pending.items() if p.started_at <= cutoff]
            for key in stale:
                del self._pending[key]
        if stale:
            log.info("Removed %d stale pending verification(s)", len(stale))
        return len(stale)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------
    def is_verified(self, user_id: str | int) -> bool:
        return self.user_db.is_verified(user_id)

    def get_verified_user(self, user_id: str | int) -> TrackedUser | None:
        return self.user_db.find_by_discord_id(user_id)

    def attempt_verification(
        self, discord_id: str | int, claimed_id: str
    ) -> VerificationResult:
        """Try to bind ``claimed_id`` to ``discord_id``.

        On success the database has been updated in memory; the caller applies
        roles and the nickname and saves the database.
        """
        discord_id = str(discord_id)
        claimed_id = claimed_id.strip()

        with self._lock:
            match = self.store.find_user_by_verification_id(claimed_id) if claimed_id else None
            if match is None:
                log.info("Verification id %r not found (user %s)", claimed_id, discord_id)
                return VerificationResult.failed(
                    VerificationFailure.NOT_FOUND,
                    f"Could not find ID '{claimed_id}' in our records. "
                    "Please check your ID and try again.",
                )
            season, entry = match

            special_roles = self.store.get_special_roles_for_user(claimed_id)
            existing = self.user_db.find_by_discord_id(discord_id)
            held = set(existing.current_roles) if existing else set()
            # Roles already applied for an earlier season are not granted twice.
            roles = [r for r in self._member_roles(special_roles) if r not in held]

            bound = self.user_db.bind_verification(
                discord_id, season.season_id, claimed_id, entry.name, special_roles
            )
            if bound.outcome is BindOutcome.ID_IN_USE:
                log.warning(
                    "User %s tried verification id already bound to another account",
                    discord_id,
                )
                return VerificationResult.failed(
                    VerificationFailure.ID_IN_USE,
                    "This ID has already been used to verify another account.",
                )
            if bound.outcome is BindOutcome.ALREADY_VERIFIED:
                return VerificationResult.failed(
                    VerificationFailure.ALREADY_VERIFIED,
                    f"You are already verified for season {season.season_id}!",
                    display_name=bound.user.display_name if bound.user else "",
                    season_id=season.season_id,
                )

            self._pending.pop(discord_id, None)

        log.info(
            "User %s verified as '%s' for season %s",
            discord_id,
            entry.name,
            season.season_id,
        )
        return VerificationResult(
            success=True,
            display_name=entry.name,
            season_id=season.season_id,
            roles_to_assign=roles,
        )

    def restore_verification(self, discord_id: str | int) -> VerificationResult | None:
        """Rebuild the role grant for a verified user who rejoined a guild.

        Leaving a guild strips every role, so the default member role and the
        stored special roles are all granted again. Returns ``None`` when the
        user is not currently verified.
        """
        discord_id = str(discord_id)
        with self._lock:
            user = self.user_db.find_by_discord_id(discord_id)
            if user is None or not self.user_db.is_verified(discord_id):
                return None
            self._pending.pop(discord_id, None)
            season_id = max(user.verification_ids, default=None)
            roles = self._member_roles(user.special_roles)
        log.info("Restoring roles for verified user %s", discord_id)
        return VerificationResult(
            success=True,
            display_name=user.display_name,
            season_id=season_id,
            roles_to_assign=roles,
        )

    def _member_roles(self, special_roles: list[str]) -> list[str]:
        return list(
            dict.fromkeys([self.store.get_default_member_role_name(), *special_roles])
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def save_database(self, path: str | Path) -> None:
        self.user_db.save(path)

    def export_database(self) -> bytes:
        return self.user_db.export()
