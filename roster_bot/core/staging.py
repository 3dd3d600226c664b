"""Two-phase upload of season rosters and special-member assignments.

Administrators stage JSON, inspect a diff against the live configuration and
then commit or cancel. Nothing staged affects verification until committed.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC
from enum import Enum
from pathlib import Path

from ..errors import ConfigValidationError, NoStagedConfigError
from .config_store import ConfigStore
from .models import SeasonUser, SpecialMembersConfig
from .roster import parse_json_model, parse_roster, roster_to_file
from .storage import dump_json, write_text_atomic

log = logging.getLogger("roster.staging")


def _now() -> float:
    return datetime.datetime.now(tz=UTC).timestamp()


class ConfigChangeType(str, Enum):
    ADD = "add"
    MODIFY = "modify"
    REMOVE = "remove"


@dataclass
class ConfigChange:
    change_type: ConfigChangeType
    entity_type: str  # "season" | "special_members"
    entity_name: str
    details: str
    user_delta: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ConfigDiff:
    additions: list[ConfigChange] = field(default_factory=list)
    modifications: list[ConfigChange] = field(default_factory=list)
    deletions: list[ConfigChange] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.additions or self.modifications or self.deletions)

    def format_for_display(self) -> str:
        sections = [
            ("Additions", "+", self.additions),
            ("Modifications", "~", self.modifications),
            ("Deletions", "-", self.deletions),
        ]
        lines: list[str] = []
        for title, marker, changes in sections:
            if not changes:
                continue
            lines.append(f"**{title}:**")
            lines.extend(
                f"{marker} {c.entity_type} ({c.entity_name}): {c.details}" for c in changes
            )
            lines.append("")
        return "\n".join(lines).strip() or "No changes detected"


@dataclass
class StagedConfig:
    seasons: dict[str, list[SeasonUser]] = field(default_factory=dict)
    special_members: SpecialMembersConfig | None = None
    staged_at: float = 0.0
    staged_by: str | None = None

    def is_empty(self) -> bool:
        return not self.seasons and self.special_members is None

    def touch(self, actor: str | None) -> None:
        self.staged_at = _now()
        self.staged_by = actor


@dataclass
class _PlannedWrite:
    entity_type: str
    entity_name: str
    path: Path
    text: str


class StagingArea:
    """Holds uploaded configuration until it is committed or discarded.

    Each stage, clear and commit bumps :attr:`generation`; a timeout armed
    with :meth:`expire_after` only clears the buffer if no such event happened
    in between.
    """

    def __init__(self, store: ConfigStore) -> None:
        self.store = store
        self._staged = StagedConfig()
        self._lock = threading.RLock()
        self.generation = 0

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------
    def stage_season_users(
        self, season_id: str, data: bytes | str, actor: str | None = None
    ) -> int:
        """Parse ``data`` as a roster and stage it for ``season_id``.

        Any roster already staged for that season is replaced. Returns the
        number of users staged.
        """
        season_id = season_id.strip()
        if not season_id or "/" in season_id or "\\" in season_id or season_id in (".", ".."):
            raise ConfigValidationError(f"invalid season id '{season_id}'")
        users = parse_roster(data)
        with self._lock:
            self._staged.seasons[season_id] = users
            self._staged.touch(actor)
            self.generation += 1
        log.info("Staged season '%s' with %d users (by %s)", season_id, len(users), actor)
        return len(users)

    def stage_special_members(self, data: bytes | str, actor: str | None = None) -> int:
        """Stage a replacement ``assignments.json``; returns the role count."""
        config = parse_json_model(SpecialMembersConfig, data)
        with self._lock:
            self._staged.special_members = config
            self._staged.touch(actor)
            self.generation += 1
        log.info("Staged special members with %d roles (by %s)", len(config.roles), actor)
        return len(config.roles)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------
    def has_staged(self) -> bool:
        with self._lock:
            return not self._staged.is_empty()

    @property
    def staged_by(self) -> str | None:
        with self._lock:
            return self._staged.staged_by

    @property
    def staged_at(self) -> float:
        with self._lock:
            return self._staged.staged_at

    def summary(self) -> str:
        with self._lock:
            parts = []
            if self._staged.seasons:
                parts.append("Seasons: " + ", ".join(sorted(self._staged.seasons)))
            if self._staged.special_members is not None:
                parts.append("Special Members")
            return "\n".join(parts) or "Nothing staged"

    def get_diff(self) -> ConfigDiff:
        """Compare the staged content with what the config store has loaded."""
        diff = ConfigDiff()
        with self._lock:
            for season_id in sorted(self._staged.seasons):
                users = self._staged.seasons[season_id]
                current = self.store.get_season(season_id)
                if current is None:
                    diff.additions.append(
                        ConfigChange(
                            ConfigChangeType.ADD,
                            "season",
                            season_id,
                            f"{len(users)} users",
                            user_delta=len(users),
                        )
                    )
                else:
                    delta = len(users) - current.user_count()
                    diff.modifications.append(
                        ConfigChange(
                            ConfigChangeType.MODIFY,
                            "season",
                            season_id,
                            f"{len(users)} users ({delta:+d} change)",
                            user_delta=delta,
                        )
                    )

            special = self._staged.special_members
            if special is not None:
                kind = (
                    ConfigChangeType.MODIFY
                    if self.store.special_members is not None
                    else ConfigChangeType.ADD
                )
                change = ConfigChange(
                    kind,
                    "special_members",
                    "assignments.json",
                    f"{len(special.roles)} roles defined",
                )
                if kind is ConfigChangeType.ADD:
                    diff.additions.append(change)
                else:
                    diff.modifications.append(change)
        return diff

    # ------------------------------------------------------------------
    # Commit / discard
    # ------------------------------------------------------------------
    def commit(self) -> list[ConfigChange]:
        """Write every staged entry to disk and fold it into the config store.

        All payloads are serialised before the first file is touched. Entries
        that were written are removed from the staging buffer; entries whose
        write failed remain staged and are reported with ``error`` set.

        Raises
        ------
        NoStagedConfigError
            If nothing is staged. No file is touched in that case.

        """
        with self._lock:
            if self._staged.is_empty():
                raise NoStagedConfigError()

            plan = self._plan_writes()
            changes: list[ConfigChange] = []
            for write in plan:
                existed = self._exists_in_store(write)
                try:
                    write_text_atomic(write.path, write.text)
                except OSError as exc:
                    log.error("Failed to write %s: %s", write.path, exc)
                    changes.append(
                        ConfigChange(
                            ConfigChangeType.MODIFY if existed else ConfigChangeType.ADD,
                            write.entity_type,
                            write.entity_name,
                            f"write to {write.path} failed",
                            error=str(exc),
                        )
                    )
                    continue
                changes.append(self._fold_in(write, existed))

            self.generation += 1
            if self._staged.is_empty():
                self._staged = StagedConfig()
            failed = sum(1 for c in changes if not c.ok)
            log.info("Committed %d change(s), %d failed", len(changes) - failed, failed)
            return changes

    def _plan_writes(self) -> list[_PlannedWrite]:
        plan = [
            _PlannedWrite(
                "season",
                season_id,
                self.store.season_users_path(season_id),
                dump_json(roster_to_file(users)),
            )
            for season_id, users in sorted(self._staged.seasons.items())
        ]
        if self._staged.special_members is not None:
            plan.append(
                _PlannedWrite(
                    "special_members",
                    "assignments.json",
                    self.store.assignments_path,
                    dump_json(self._staged.special_members.model_dump()),
                )
            )
        return plan

    def _exists_in_store(self, write: _PlannedWrite) -> bool:
        if write.entity_type == "season":
            return self.store.get_season(write.entity_name) is not None
        return self.store.special_members is not None

    def _fold_in(self, write: _PlannedWrite, existed: bool) -> ConfigChange:
        kind = ConfigChangeType.MODIFY if existed else ConfigChangeType.ADD
        if write.entity_type == "season":
            users = self._staged.seasons.pop(write.entity_name)
            self.store.apply_season_roster(write.entity_name, users)
            return ConfigChange(
                kind,
                "season",
                write.entity_name,
                f"Saved {len(users)} users to seasons/{write.entity_name}/users.json",
            )
        config = self._staged.special_members
        self._staged.special_members = None
        self.store.apply_special_members(config)
        return ConfigChange(
            kind,
            "special_members",
            "assignments.json",
            f"{len(config.roles)} roles",
        )

    def clear(self) -> None:
        """Discard everything staged without applying it."""
        with self._lock:
            self._staged = StagedConfig()
            self.generation += 1
        log.info("Staged configuration cleared")

    def clear_if_unchanged(self, token: int) -> bool:
        """Clear the buffer only if ``generation`` still equals ``token``."""
        with self._lock:
            if self.generation != token or self._staged.is_empty():
                return False
            self.clear()
            return True

    async def expire_after(self, seconds: float) -> bool:
        """Clear staged content after ``seconds`` unless it changed meanwhile."""
        token = self.generation
        await asyncio.sleep(seconds)
        expired = self.clear_if_unchanged(token)
        if expired:
            log.info("Staged configuration expired after %.0f seconds", seconds)
        return expired
