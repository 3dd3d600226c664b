"""Roster parsing and season channel layout merging."""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, TypeAdapter, ValidationError

from ..errors import ConfigValidationError
from .models import ChannelDefinition, SeasonSettings, SeasonUser


class RosterDocument(BaseModel):
    """Legacy roster shape: an object wrapping the user array."""

    season_id: str | None = None
    name: str | None = None
    active: bool = True
    users: list[SeasonUser]


_ROSTER_PAYLOAD = TypeAdapter(list[SeasonUser] | RosterDocument)


def parse_roster(data: bytes | str) -> list[SeasonUser]:
    """Parse an uploaded or on-disk roster into a list of entries.

    Both a bare JSON array of ``{"Name", "DiscordId"}`` objects and an object
    with a ``users`` array are accepted; the result never depends on which
    shape was supplied. A verification id appearing twice is rejected.

    Raises
    ------
    ConfigValidationError
        If ``data`` is not JSON or does not match either shape.

    """
    try:
        payload = _ROSTER_PAYLOAD.validate_json(data)
    except ValidationError as exc:
        raise ConfigValidationError(_describe(exc)) from exc

    users = payload.users if isinstance(payload, RosterDocument) else payload
    _check_unique(users)
    return list(users)


def _describe(exc: ValidationError) -> str:
    errors = exc.errors()
    if errors and errors[0].get("type") == "json_invalid":
        return f"not valid JSON ({errors[0].get('msg')})"
    return (
        "expected a JSON array of {\"Name\", \"DiscordId\"} objects "
        f"or an object with a \"users\" array: {exc.error_count()} validation error(s)"
    )


def _check_unique(users: Iterable[SeasonUser]) -> None:
    seen: set[str] = set()
    dupes: list[str] = []
    for user in users:
        if user.verification_id in seen:
            dupes.append(user.verification_id)
        seen.add(user.verification_id)
    if dupes:
        raise ConfigValidationError(
            "duplicate verification id(s) in roster: " + ", ".join(sorted(set(dupes)))
        )


def roster_to_file(users: Iterable[SeasonUser]) -> list[dict]:
    """Return the bare-array form written to ``users.json``."""
    return [u.to_file() for u in users]


def parse_json_model(model: type[BaseModel], data: bytes | str) -> BaseModel:
    """Validate ``data`` against ``model``, mapping failures to ``ConfigValidationError``."""
    try:
        return model.model_validate_json(data)
    except ValidationError as exc:
        raise ConfigValidationError(str(exc)) from exc


def merge_channels(
    defaults: list[ChannelDefinition], settings: SeasonSettings
) -> list[ChannelDefinition]:
    """Combine the global channel layout with a season's overrides.

    Explicit ``channels`` replace the defaults outright. Otherwise each default
    channel is swapped for a same-named override, and additional channels are
    appended unless a channel with that name is already present.
    """
    if settings.channels:
        return list(settings.channels)

    overrides = {c.name: c for c in settings.channel_overrides}
    merged = [overrides.get(c.name, c) for c in defaults]
    names = {c.name for c in merged}
    for extra in settings.additional_channels:
        if extra.name not in names:
            merged.append(extra)
            names.add(extra.name)
    return merged
