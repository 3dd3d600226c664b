"""End-to-end tests for the shared service object."""

import asyncio
import json
from dataclasses import replace
from pathlib import Path

import httpx

from roster_bot.adapters.base import RoleApplier
from roster_bot.config import Settings
from roster_bot.services import build_services


class FakeApplier(RoleApplier):
    def __init__(self, roles: dict[str, str], fail_guilds: set[str] = frozenset()):
        self.roles = roles
        self.fail_guilds = fail_guilds
        self.added: list[tuple[str, str, str]] = []
        self.nicknames: list[tuple[str, str, str]] = []

    async def list_roles(self, guild_id: str) -> dict[str, str]:
        if guild_id in self.fail_guilds:
            raise httpx.ConnectError("offline")
        return self.roles

    async def add_member_role(self, guild_id: str, user_id: str, role_id: str) -> None:
        self.added.append((guild_id, user_id, role_id))

    async def set_nickname(self, guild_id: str, user_id: str, nickname: str) -> None:
        self.nicknames.append((guild_id, user_id, nickname))


def make_settings(tmp_path: Path) -> Settings:
    users = tmp_path / "data" / "seasons" / "2025E" / "users.json"
    users.parent.mkdir(parents=True)
    users.write_text(json.dumps([{"Name": "Alice", "DiscordId": "uuid-1"}]))
    return Settings(
        token="",
        data_path=str(tmp_path / "data"),
        state_path=str(tmp_path / "state" / "user_database.json"),
    )


def test_build_services_without_token_has_no_applier(tmp_path: Path) -> None:
    services = build_services(make_settings(tmp_path))
    assert services.applier is None
    assert services.store.get_season("2025E") is not None
    assert services.user_db.user_count() == 0


def test_verify_applies_records_and_saves(tmp_path: Path) -> None:
    applier = FakeApplier({"Member": "22"})
    settings = make_settings(tmp_path)
    services = build_services(settings, applier=applier)

    reply = asyncio.run(services.verify(42, "uuid-1", [9, 10]))

    assert "Verification Successful" in reply
    assert ("9", "42", "22") in applier.added
    assert ("10", "42", "22") in applier.added
    assert applier.nicknames[0][2] == "Alice"
    user = services.user_db.find_by_discord_id(42)
    assert user.current_roles == ["Member"]
    saved = json.loads(Path(settings.state_path).read_text())
    assert saved["users"]["42"]["current_roles"] == ["Member"]
    assert not services.user_db.dirty


def test_verify_failure_reply(tmp_path: Path) -> None:
    applier = FakeApplier({"Member": "22"})
    services = build_services(make_settings(tmp_path), applier=applier)

    reply = asyncio.run(services.verify(42, "uuid-404", [9]))

    assert "Could not find ID 'uuid-404'" in reply
    assert applier.added == []
    assert not Path(services.settings.state_path).exists()


def test_guild_errors_do_not_lose_verification(tmp_path: Path) -> None:
    applier = FakeApplier({"Member": "22"}, fail_guilds={"9"})
    services = build_services(make_settings(tmp_path), applier=applier)

    asyncio.run(services.verify(42, "uuid-1", [9, 10]))

    assert applier.added == [("10", "42", "22")]
    assert services.user_db.is_verified(42)


def test_save_failure_is_reported(tmp_path: Path) -> None:
    services = build_services(make_settings(tmp_path))
    blocker = tmp_path / "blocked"
    blocker.write_text("file")
    services.settings = replace(services.settings, state_path=str(blocker / "db.json"))
    services.engine.attempt_verification(1, "uuid-1")
    assert not services.save_database()
    assert services.user_db.dirty
