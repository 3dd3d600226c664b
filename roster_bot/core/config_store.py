"""In-memory view of the ``data/`` configuration tree.

Layout::

    data/
    ├── global/
    │   ├── roles.json          # role definitions
    │   ├── permissions.json    # named allow/deny presets
    │   ├── assignments.json    # special role -> verification ids, maintainers
    │   └── channels.json       # default channel layout for season categories
    └── seasons/
        └── 2025E/
            ├── season.json     # optional metadata and channel overrides
            └── users.json      # the roster
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from pydantic import BaseModel, ValidationError

from ..errors import (
    ConfigLoadError,
    ConfigNotFoundError,
    ConfigParseError,
    ConfigValidationError,
)
from .models import (
    DEFAULT_MEMBER_ROLE,
    ChannelDefinition,
    GlobalChannelsConfig,
    GlobalPermissionsConfig,
    GlobalRolesConfig,
    PermissionSet,
    RoleDefinition,
    Season,
    SeasonSettings,
    SeasonUser,
    SpecialMembersConfig,
    default_member_role_for,
)
from .roster import merge_channels, parse_roster, roster_to_file
from .storage import dump_json, read_json

log = logging.getLogger("roster.config")

LEGACY_SEASON_ID = "legacy"


class ConfigStore:
    """Global and per-season configuration loaded from ``data_path``.

    All public methods take the store lock so a commit folding new rosters in
    never interleaves with a lookup.
    """

    def __init__(self, data_path: str | Path = "data") -> None:
        self.data_path = Path(data_path)
        self._lock = threading.RLock()
        self.roles = GlobalRolesConfig.default()
        self.permissions = GlobalPermissionsConfig.default()
        self.default_channels: list[ChannelDefinition] = []
        self.special_members: SpecialMembersConfig | None = None
        self._seasons: dict[str, Season] = {}

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------
    @property
    def global_dir(self) -> Path:
        return self.data_path / "global"

    @property
    def seasons_dir(self) -> Path:
        return self.data_path / "seasons"

    @property
    def assignments_path(self) -> Path:
        return self.global_dir / "assignments.json"

    def season_users_path(self, season_id: str) -> Path:
        return self.seasons_dir / season_id / "users.json"

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def load_all(self) -> None:
        """(Re)load every configuration file below ``data_path``.

        Missing optional files fall back to defaults and malformed files are
        logged and skipped. A season whose ``season.json`` or ``users.json`` is
        malformed is left out entirely.

        Raises
        ------
        ConfigLoadError
            If ``data_path`` exists but is not a directory.

        """
        if self.data_path.exists() and not self.data_path.is_dir():
            raise ConfigLoadError(str(self.data_path), "not a directory")
        if not self.data_path.exists():
            log.warning("Data directory %s does not exist; using defaults", self.data_path)

        roles = self._load_model(self.global_dir / "roles.json", GlobalRolesConfig)
        permissions = self._load_model(
            self.global_dir / "permissions.json", GlobalPermissionsConfig
        )
        channels = self._load_model(self.global_dir / "channels.json", GlobalChannelsConfig)
        special = self._load_model(self.assignments_path, SpecialMembersConfig)
        default_channels = channels.channels if channels else []

        seasons, skipped = self._load_seasons(default_channels)
        if not seasons:
            legacy = self._load_legacy_season(default_channels)
            if legacy is not None:
                seasons[legacy.season_id] = legacy
        if skipped:
            log.warning(
                "Skipped %d season(s) with malformed files: %s",
                len(skipped),
                "; ".join(skipped),
            )

        with self._lock:
            self.roles = roles or GlobalRolesConfig.default()
            self.permissions = permissions or GlobalPermissionsConfig.default()
            self.default_channels = default_channels
            self.special_members = special
            self._seasons = seasons
            self._warn_ambiguous_ids()

        log.info(
            "Config loaded: %d seasons, %d roles, special_members=%s",
            len(seasons),
            len(self.roles.roles),
            special is not None,
        )

    def _load_model(self, path: Path, model: type[BaseModel]) -> BaseModel | None:
        if not path.exists():
            log.info("%s not found; using defaults", path)
            return None
        try:
            return _read_model(path, model)
        except (ConfigLoadError, ConfigParseError) as exc:
            log.warning("%s", exc)
            return None

    def _load_seasons(
        self, default_channels: list[ChannelDefinition]
    ) -> tuple[dict[str, Season], list[str]]:
        seasons: dict[str, Season] = {}
        skipped: list[str] = []
        if not self.seasons_dir.is_dir():
            return seasons, skipped

        for entry in sorted(self.seasons_dir.iterdir()):
            if not entry.is_dir():
                continue
            season_id = entry.name
            try:
                season = self._load_season_dir(entry, default_channels)
            except (ConfigLoadError, ConfigParseError) as exc:
                skipped.append(f"{season_id} ({exc})")
                continue
            seasons[season_id] = season
            log.info("Loaded season '%s' with %d users", season_id, season.user_count())
        return seasons, skipped

    def _load_season_dir(
        self, directory: Path, default_channels: list[ChannelDefinition]
    ) -> Season:
        season_id = directory.name
        settings_path = directory / "season.json"
        settings = (
            _read_model(settings_path, SeasonSettings)
            if settings_path.exists()
            else SeasonSettings()
        )
        users_path = directory / "users.json"
        roster = _read_roster(users_path) if users_path.exists() else []
        return build_season(season_id, settings, roster, default_channels)

    def _load_legacy_season(
        self, default_channels: list[ChannelDefinition]
    ) -> Season | None:
        path = self.data_path / "users.json"
        if not path.exists():
            return None
        try:
            roster = _read_roster(path)
        except (ConfigLoadError, ConfigParseError) as exc:
            log.warning("%s", exc)
            return None
        log.info("Loaded legacy users.json as season '%s'", LEGACY_SEASON_ID)
        return build_season(
            LEGACY_SEASON_ID,
            SeasonSettings(name="Legacy Users"),
            roster,
            default_channels,
        )

    def _warn_ambiguous_ids(self) -> None:
        owners: dict[str, list[str]] = {}
        for season_id in sorted(self._seasons):
            season = self._seasons[season_id]
            if not season.active:
                continue
            for vid in season.verification_ids():
                owners.setdefault(vid, []).append(season.season_id)
        for vid, season_ids in owners.items():
            if len(season_ids) > 1:
                log.warning(
                    "Verification id %s appears in seasons %s; '%s' takes precedence",
                    vid,
                    ", ".join(season_ids),
                    season_ids[0],
                )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_season(self, season_id: str) -> Season | None:
        with self._lock:
            return self._seasons.get(season_id)

    def all_seasons(self) -> list[Season]:
        with self._lock:
            return [self._seasons[k] for k in sorted(self._seasons)]

    def active_seasons(self) -> list[Season]:
        return [s for s in self.all_seasons() if s.active]

    def find_user_by_verification_id(
        self, verification_id: str
    ) -> tuple[Season, SeasonUser] | None:
        """Return the first ``(season, entry)`` holding ``verification_id``.

        Only active seasons are searched, in sorted ``season_id`` order.
        """
        for season in self.active_seasons():
            user = season.find_user(verification_id)
            if user is not None:
                return season, user
        return None

    def get_special_roles_for_user(self, verification_id: str) -> list[str]:
        with self._lock:
            if self.special_members is None:
                return []
            return self.special_members.roles_for(verification_id)

    def get_default_member_role_name(self) -> str:
        with self._lock:
            role = self.roles.default_member_role()
            return role.name if role else DEFAULT_MEMBER_ROLE

    def get_role_definition(self, name: str) -> RoleDefinition | None:
        with self._lock:
            return self.roles.get_role(name)

    def get_permission_definition(self, name: str) -> PermissionSet | None:
        with self._lock:
            return self.permissions.definitions.get(name)

    def is_maintainer(self, username: str) -> bool:
        with self._lock:
            return bool(self.special_members and self.special_members.is_maintainer(username))

    # ------------------------------------------------------------------
    # Mutation (used by staging commits)
    # ------------------------------------------------------------------
    def apply_season_roster(self, season_id: str, roster: list[SeasonUser]) -> Season:
        """Replace the roster of ``season_id``, creating the season if needed."""
        with self._lock:
            current = self._seasons.get(season_id)
            if current is None:
                season = build_season(
                    season_id, SeasonSettings(), roster, self.default_channels
                )
            else:
                season = current.model_copy(update={"roster": list(roster)})
            self._seasons[season_id] = season
            return season

    def apply_special_members(self, config: SpecialMembersConfig) -> None:
        with self._lock:
            self.special_members = config

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def export_config(self, config_type: str, name: str | None = None) -> tuple[str, bytes]:
        """Return ``(filename, json_bytes)`` for a loaded config file."""
        with self._lock:
            if config_type in ("season", "users"):
                season = self._seasons.get(name or "")
                if season is None:
                    raise ConfigNotFoundError("season", name or "unspecified")
                payload: object = roster_to_file(season.roster)
                filename = f"seasons/{season.season_id}/users.json"
            elif config_type in ("assignments", "special_members", "roles"):
                if self.special_members is None:
                    raise ConfigNotFoundError("assignments")
                payload = self.special_members.model_dump()
                filename = "global/assignments.json"
            elif config_type == "global_roles":
                payload = self.roles.model_dump(exclude_none=True)
                filename = "global/roles.json"
            elif config_type == "permissions":
                payload = self.permissions.model_dump()
                filename = "global/permissions.json"
            else:
                raise ConfigNotFoundError(config_type, name or "")
        return filename, dump_json(payload).encode("utf-8")

    def config_files(self) -> list[tuple[str, str]]:
        """List loaded files as ``(relative_path, summary)`` pairs."""
        with self._lock:
            files = [
                ("global/roles.json", f"{len(self.roles.roles)} roles"),
                (
                    "global/permissions.json",
                    f"{len(self.permissions.definitions)} permission presets",
                ),
            ]
            if self.special_members is not None:
                files.append(
                    (
                        "global/assignments.json",
                        f"{len(self.special_members.roles)} roles, "
                        f"{self.special_members.assignment_count()} assignments",
                    )
                )
            for season_id in sorted(self._seasons):
                season = self._seasons[season_id]
                state = "active" if season.active else "inactive"
                files.append(
                    (
                        f"seasons/{season_id}/users.json",
                        f"{season.user_count()} users ({state})",
                    )
                )
            return files


def build_season(
    season_id: str,
    settings: SeasonSettings,
    roster: list[SeasonUser],
    default_channels: list[ChannelDefinition],
) -> Season:
    return Season(
        season_id=season_id,
        display_name=settings.name or season_id,
        active=settings.active,
        member_role_name=settings.member_role or default_member_role_for(season_id),
        category_name=settings.category_name or settings.name or season_id,
        channel_definitions=merge_channels(default_channels, settings),
        roster=list(roster),
    )


def _read_model(path: Path, model: type[BaseModel]) -> BaseModel:
    try:
        data = read_json(path)
    except OSError as exc:
        raise ConfigLoadError(str(path), exc) from exc
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ConfigParseError(str(path), exc) from exc
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ConfigParseError(str(path), exc) from exc


def _read_roster(path: Path) -> list[SeasonUser]:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ConfigLoadError(str(path), exc) from exc
    try:
        return parse_roster(raw)
    except ConfigValidationError as exc:
        raise ConfigParseError(str(path), exc) from exc
