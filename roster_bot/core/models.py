"""Data models for the roster configuration files and seasons.

The models are implemented using :mod:`pydantic` so that uploaded and on-disk
JSON is validated at the boundary and can be dumped back in the same shape.
Field aliases keep the legacy key names (``Name``/``DiscordId``) of the roster
files while the Python attributes use descriptive names.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_MEMBER_ROLE = "Member"


class SeasonUser(BaseModel):
    """One entry of a season roster.

    Attributes
    ----------
    name:
        Display name, used as the member's nickname after verification.
    verification_id:
        Opaque pre-issued token (usually a UUID). Stored under the legacy key
        ``DiscordId`` although it is not a Discord snowflake.
    email:
        Optional contact address kept for reference only.

    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(alias="Name")
    verification_id: str = Field(alias="DiscordId")
    email: str | None = None

    def to_file(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class RoleDefinition(BaseModel):
    name: str
    color: str | None = None
    hoist: bool = False
    mentionable: bool = False
    position: int | None = None
    is_default_member_role: bool = False
    permissions: list[str] = Field(default_factory=list)
    skip_permission_sync: bool = False


class PermissionSet(BaseModel):
    allow: list[str] = Field(default_factory=list)
    deny: list[str] = Field(default_factory=list)


class ChannelType(str, Enum):
    CATEGORY = "category"
    TEXT = "text"
    VOICE = "voice"
    FORUM = "forum"
    STAGE = "stage"
    NEWS = "news"


class ChannelPermissionLevel(str, Enum):
    NONE = "none"
    READ = "read"
    READWRITE = "readwrite"
    ADMIN = "admin"


class ChannelDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    channel_type: ChannelType = Field(default=ChannelType.TEXT, alias="type")
    position: int | None = None
    role_permissions: dict[str, ChannelPermissionLevel] = Field(default_factory=dict)
    children: list[ChannelDefinition] = Field(default_factory=list)


class GlobalRolesConfig(BaseModel):
    """Contents of ``global/roles.json``."""

    roles: list[RoleDefinition] = Field(default_factory=list)

    @classmethod
    def default(cls) -> GlobalRolesConfig:
        return cls(
            roles=[
                RoleDefinition(
                    name=DEFAULT_MEMBER_ROLE,
                    color="#2ecc71",
                    mentionable=True,
                    is_default_member_role=True,
                )
            ]
        )

    def default_member_role(self) -> RoleDefinition | None:
        return next((r for r in self.roles if r.is_default_member_role), None)

    def get_role(self, name: str) -> RoleDefinition | None:
        return next((r for r in self.roles if r.name == name), None)


class GlobalPermissionsConfig(BaseModel):
    """Contents of ``global/permissions.json``: named allow/deny presets."""

    definitions: dict[str, PermissionSet] = Field(default_factory=dict)

    @classmethod
    def default(cls) -> GlobalPermissionsConfig:
        return cls(
            definitions={
                "none": PermissionSet(deny=["VIEW_CHANNEL", "CONNECT"]),
                "read": PermissionSet(
                    allow=["VIEW_CHANNEL", "READ_MESSAGE_HISTORY"],
                    deny=["SEND_MESSAGES"],
                ),
                "readwrite": PermissionSet(
                    allow=[
                        "VIEW_CHANNEL",
                        "READ_MESSAGE_HISTORY",
                        "SEND_MESSAGES",
                        "ATTACH_FILES",
                        "ADD_REACTIONS",
                    ]
                ),
                "admin": PermissionSet(
                    allow=[
                        "VIEW_CHANNEL",
                        "READ_MESSAGE_HISTORY",
                        "SEND_MESSAGES",
                        "MANAGE_MESSAGES",
                        "MANAGE_CHANNELS",
                    ]
                ),
            }
        )


class GlobalChannelsConfig(BaseModel):
    """Contents of ``global/channels.json``: the default season layout."""

    channels: list[ChannelDefinition] = Field(default_factory=list)


class SpecialMembersConfig(BaseModel):
    """Contents of ``global/assignments.json``.

    ``roles`` maps a special role name to the verification ids holding it.
    ``maintainers`` lists Discord usernames allowed to run admin commands.
    """

    roles: dict[str, list[str]] = Field(default_factory=dict)
    maintainers: list[str] = Field(default_factory=list)

    def roles_for(self, verification_id: str) -> list[str]:
        return [name for name, ids in self.roles.items() if verification_id in ids]

    def is_maintainer(self, username: str) -> bool:
        lowered = username.lower()
        return any(m.lower() == lowered for m in self.maintainers)

    def assignment_count(self) -> int:
        return sum(len(ids) for ids in self.roles.values())


class SeasonSettings(BaseModel):
    """Contents of ``seasons/<id>/season.json``; every field is optional."""

    name: str | None = None
    active: bool = True
    member_role: str | None = None
    category_name: str | None = None
    channels: list[ChannelDefinition] = Field(default_factory=list)
    channel_overrides: list[ChannelDefinition] = Field(default_factory=list)
    additional_channels: list[ChannelDefinition] = Field(default_factory=list)


class Season(BaseModel):
    """A loaded season: metadata from ``season.json`` plus its roster."""

    season_id: str
    display_name: str
    active: bool = True
    member_role_name: str
    category_name: str
    channel_definitions: list[ChannelDefinition] = Field(default_factory=list)
    roster: list[SeasonUser] = Field(default_factory=list)

    def find_user(self, verification_id: str) -> SeasonUser | None:
        return next(
            (u for u in self.roster if u.verification_id == verification_id), None
        )

    def user_count(self) -> int:
        return len(self.roster)

    def verification_ids(self) -> set[str]:
        return {u.verification_id for u in self.roster}


def default_member_role_for(season_id: str) -> str:
    return f"Member{season_id}"
