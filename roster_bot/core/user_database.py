"""Persistent record of which Discord accounts verified for which seasons."""

from __future__ import annotations

import datetime
import json
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ConfigParseError, StateLoadError, StateSaveError
from .storage import dump_json, read_json, write_text_atomic

log = logging.getLogger("roster.database")

SCHEMA_VERSION = 3
# Season assumed for version 1 records that carry no ``seasons`` list.
LEGACY_SEASON_ID = "legacy"


def _now() -> int:
    return int(datetime.datetime.now(tz=UTC).timestamp())


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REVOKED = "revoked"
    EXPIRED = "expired"


class TrackedUser(BaseModel):
    """A Discord account and its verification history.

    Attributes
    ----------
    discord_id:
        Discord snowflake as a string; the database key.
    verification_ids:
        Season id mapped to the verification id used for that season.
    display_name:
        Name from the roster entry of the most recent verification.
    verified_at, last_seen:
        Unix timestamps in seconds.
    special_roles:
        Special roles granted through ``assignments.json``.
    current_roles:
        Roles the bot last applied on Discord.

    """

    model_config = ConfigDict(populate_by_name=True)

    discord_id: str
    verification_ids: dict[str, str] = Field(default_factory=dict)
    display_name: str = ""
    verified_at: int = Field(default_factory=_now)
    special_roles: list[str] = Field(default_factory=list)
    current_roles: list[str] = Field(default_factory=list)
    status: VerificationStatus = Field(
        default=VerificationStatus.VERIFIED, alias="verification_status"
    )
    last_seen: int | None = None
    notes: str | None = None

    def add_verification_id(self, season_id: str, verification_id: str) -> None:
        self.verification_ids[season_id] = verification_id

    def add_special_roles(self, roles: Iterable[str]) -> None:
        for role in roles:
            if role not in self.special_roles:
                self.special_roles.append(role)

    def add_role(self, role: str) -> None:
        if role not in self.current_roles:
            self.current_roles.append(role)

    def remove_role(self, role: str) -> None:
        self.current_roles = [r for r in self.current_roles if r != role]

    def touch(self) -> None:
        self.last_seen = _now()


class BindOutcome(str, Enum):
    CREATED = "created"
    MERGED = "merged"
    ID_IN_USE = "id_in_use"
    ALREADY_VERIFIED = "already_verified"


@dataclass
class BindResult:
    outcome: BindOutcome
    user: TrackedUser | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in (BindOutcome.CREATED, BindOutcome.MERGED)


# ----------------------------------------------------------------------
# Schema migration
# ----------------------------------------------------------------------
def _migrate_v1_to_v2(user: dict[str, Any]) -> None:
    """``verification_id`` + ``seasons`` list -> ``verification_ids`` map."""
    if "verification_ids" in user:
        return
    ids: dict[str, str] = {}
    vid = user.get("verification_id")
    if isinstance(vid, str) and vid:
        seasons = user.get("seasons") or []
        season = seasons[0] if seasons and isinstance(seasons[0], str) else LEGACY_SEASON_ID
        ids[season] = vid
    user["verification_ids"] = ids


def _migrate_v2_to_v3(user: dict[str, Any]) -> None:
    """Drop fields made redundant by ``verification_ids``."""
    user.pop("seasons", None)
    user.pop("verification_id", None)


_MIGRATIONS = {1: _migrate_v1_to_v2, 2: _migrate_v2_to_v3}


def migrate(data: dict[str, Any]) -> tuple[dict[str, Any], int]:
    """Bring a raw database document up to :data:`SCHEMA_VERSION`.

    Returns the migrated document and the version it was stored as. A missing
    or unknown version is treated as version 1. A document already at the
    current version is returned unchanged.
    """
    version = data.get("version")
    if not isinstance(version, int) or version < 1 or version > SCHEMA_VERSION:
        version = 1
    original = version
    users = data.get("users") or {}
    while version < SCHEMA_VERSION:
        step = _MIGRATIONS[version]
        for user in users.values():
            if isinstance(user, dict):
                step(user)
        version += 1
    if original != SCHEMA_VERSION:
        data["version"] = SCHEMA_VERSION
        data["users"] = users
    return data, original


class UserDatabase:
    """In-memory map of ``discord_id -> TrackedUser`` with atomic JSON saves."""

    def __init__(self) -> None:
        self.version = SCHEMA_VERSION
        self.last_updated = _now()
        self._users: dict[str, TrackedUser] = {}
        self._lock = threading.RLock()
        self.dirty = False

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    @classmethod
    def load(cls, path: str | Path) -> UserDatabase:
        """Load the database at ``path``; a missing file yields an empty one.

        Raises
        ------
        StateLoadError
            If the file exists but cannot be read.
        ConfigParseError
            If the file is not valid JSON or does not match the schema.

        """
        path = Path(path)
        db = cls()
        try:
            raw = read_json(path)
        except FileNotFoundError:
            log.info("No user database at %s; starting empty", path)
            return db
        except OSError as exc:
            raise StateLoadError(str(path), exc) from exc
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ConfigParseError(str(path), exc) from exc
        if not isinstance(raw, dict):
            raise ConfigParseError(str(path), "expected a JSON object")
        if not isinstance(raw.get("users") or {}, dict):
            raise ConfigParseError(str(path), "users must be an object")

        data, stored_version = migrate(raw)
        if stored_version != SCHEMA_VERSION:
            log.info(
                "Migrated user database from version %d to %d",
                stored_version,
                SCHEMA_VERSION,
            )
            db.dirty = True
        try:
            db._users = {
                str(key): TrackedUser.model_validate({**value, "discord_id": str(key)})
                for key, value in (data.get("users") or {}).items()
            }
        except (ValidationError, TypeError) as exc:
            raise ConfigParseError(str(path), exc) from exc
        db.last_updated = int(data.get("last_updated") or db.last_updated)
        log.info("Loaded %d tracked users from %s", len(db._users), path)
        return db

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "version": self.version,
                "last_updated": self.last_updated,
                "users": {
                    key: user.model_dump(mode="json", by_alias=True, exclude_none=True)
                    for key, user in self._users.items()
                },
            }

    def export(self) -> bytes:
        """Return the whole database as pretty-printed JSON bytes."""
        return dump_json(self.to_dict()).encode("utf-8")

    def save(self, path: str | Path) -> None:
        """Persist the database atomically.

        On failure the in-memory state is untouched and :attr:`dirty` stays
        set, so a later save can retry.
        """
        path = Path(path)
        text = dump_json(self.to_dict())
        try:
            write_text_atomic(path, text)
        except OSError as exc:
            raise StateSaveError(str(path), exc) from exc
        with self._lock:
            self.dirty = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def find_by_discord_id(self, discord_id: str | int) -> TrackedUser | None:
        with self._lock:
            return self._users.get(str(discord_id))

    def find_by_verification_id(self, verification_id: str) -> TrackedUser | None:
        """Linear scan over every user's verification ids."""
        with self._lock:
            return next(
                (
                    u
                    for u in self._users.values()
                    if verification_id in u.verification_ids.values()
                ),
                None,
            )

    def is_verified(self, discord_id: str | int) -> bool:
        user = self.find_by_discord_id(discord_id)
        return user is not None and user.status is VerificationStatus.VERIFIED

    def all_users(self) -> list[TrackedUser]:
        with self._lock:
            return list(self._users.values())

    def users_by_season(self, season_id: str) -> list[TrackedUser]:
        with self._lock:
            return [u for u in self._users.values() if season_id in u.verification_ids]

    def user_count(self) -> int:
        with self._lock:
            return len(self._users)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def upsert_user(self, user: TrackedUser) -> None:
        with self._lock:
            self._users[user.discord_id] = user
            self._mark_modified()

    def bind_verification(
        self,
        discord_id: str | int,
        season_id: str,
        verification_id: str,
        display_name: str,
        special_roles: list[str],
    ) -> BindResult:
        """Bind ``verification_id`` to ``discord_id`` for ``season_id``.

        The uniqueness checks and the write happen under one lock acquisition:
        the id must not belong to another account, and the account must not
        already hold an id for the season.
        """
        discord_id = str(discord_id)
        with self._lock:
            owner = self.find_by_verification_id(verification_id)
            if owner is not None and owner.discord_id != discord_id:
                return BindResult(BindOutcome.ID_IN_USE)

            existing = self._users.get(discord_id)
            if existing is not None and season_id in existing.verification_ids:
                return BindResult(BindOutcome.ALREADY_VERIFIED, existing)

            if existing is None:
                user = TrackedUser(
                    discord_id=discord_id,
                    verification_ids={season_id: verification_id},
                    display_name=display_name,
                    special_roles=list(dict.fromkeys(special_roles)),
                    last_seen=_now(),
                )
                outcome = BindOutcome.CREATED
            else:
                user = existing.model_copy(deep=True)
                user.add_verification_id(season_id, verification_id)
                user.add_special_roles(special_roles)
                user.display_name = display_name
                # A new season's id reinstates revoked or expired accounts.
                user.status = VerificationStatus.VERIFIED
                user.touch()
                outcome = BindOutcome.MERGED
            self._users[discord_id] = user
            self._mark_modified()
            return BindResult(outcome, user)

    def record_roles(self, discord_id: str | int, roles: Iterable[str]) -> None:
        """Remember roles the bot applied to ``discord_id`` on Discord."""
        with self._lock:
            user = self._users.get(str(discord_id))
            if user is None:
                return
            for role in roles:
                user.add_role(role)
            self._mark_modified()

    def set_status(self, discord_id: str | int, status: VerificationStatus) -> bool:
        with self._lock:
            user = self._users.get(str(discord_id))
            if user is None:
                return False
            user.status = status
            self._mark_modified()
            return True

    def _mark_modified(self) -> None:
        self.last_updated = _now()
        self.dirty = True
