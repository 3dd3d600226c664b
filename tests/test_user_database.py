"""Tests for the persistent user database and its schema migration."""

import json
from pathlib import Path

import pytest

from roster_bot.core.user_database import (
    SCHEMA_VERSION,
    BindOutcome,
    TrackedUser,
    UserDatabase,
    VerificationStatus,
    migrate,
)
from roster_bot.errors import ConfigParseError, StateSaveError


def test_missing_file_is_empty_database(tmp_path: Path) -> None:
    db = UserDatabase.load(tmp_path / "state" / "user_database.json")
    assert db.user_count() == 0
    assert not db.dirty


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "state" / "user_database.json"
    db = UserDatabase()
    db.bind_verification("42", "2025E", "uuid-1", "Alice", ["Tutor"])
    assert db.dirty
    db.save(path)
    assert not db.dirty
    assert not path.with_name(path.name + ".tmp").exists()

    raw = json.loads(path.read_text())
    assert raw["version"] == SCHEMA_VERSION
    assert raw["users"]["42"]["verification_status"] == "verified"

    loaded = UserDatabase.load(path)
    user = loaded.find_by_discord_id(42)
    assert user.verification_ids == {"2025E": "uuid-1"}
    assert user.special_roles == ["Tutor"]
    assert loaded.is_verified("42")
    assert loaded.find_by_verification_id("uuid-1").discord_id == "42"


def test_migrates_version_one(tmp_path: Path) -> None:
    path = tmp_path / "db.json"
    path.write_text(
        json.dumps(
            {
                "version": 1,
                "users": {
                    "1": {
                        "discord_id": "1",
                        "verification_id": "uuid-1",
                        "seasons": ["2024F"],
                        "display_name": "Alice",
                        "verified_at": 1700000000,
                        "verification_status": "verified",
                    },
                    "2": {
                        "discord_id": "2",
                        "verification_id": "uuid-2",
                        "display_name": "Bob",
                        "verified_at": 1700000000,
                    },
                },
            }
        )
    )
    db = UserDatabase.load(path)
    assert db.dirty
    assert db.find_by_discord_id("1").verification_ids == {"2024F": "uuid-1"}
    assert db.find_by_discord_id("2").verification_ids == {"legacy": "uuid-2"}

    db.save(path)
    raw = json.loads(path.read_text())
    assert raw["version"] == SCHEMA_VERSION
    assert "seasons" not in raw["users"]["1"]
    assert "verification_id" not in raw["users"]["1"]


def test_missing_version_is_oldest() -> None:
    data, version = migrate({"users": {"1": {"verification_id": "x"}}})
    assert version == 1
    assert data["version"] == SCHEMA_VERSION
    assert data["users"]["1"]["verification_ids"] == {"legacy": "x"}


def test_migrates_version_two() -> None:
    doc = {
        "version": 2,
        "users": {
            "1": {
                "verification_ids": {"2025E": "uuid-1"},
                "verification_id": "uuid-1",
                "seasons": ["2025E"],
            }
        },
    }
    data, version = migrate(doc)
    assert version == 2
    assert data["users"]["1"] == {"verification_ids": {"2025E": "uuid-1"}}


def test_current_version_is_unchanged(tmp_path: Path) -> None:
    path = tmp_path / "db.json"
    db = UserDatabase()
    db.bind_verification("7", "2025E", "uuid-7", "Gina", [])
    db.save(path)
    first = json.loads(path.read_text())

    loaded = UserDatabase.load(path)
    assert not loaded.dirty
    loaded.save(path)
    assert json.loads(path.read_text()) == first


def test_malformed_file_raises(tmp_path: Path) -> None:
    path = tmp_path / "db.json"
    path.write_text("{ broken")
    with pytest.raises(ConfigParseError):
        UserDatabase.load(path)
    path.write_text("[]")
    with pytest.raises(ConfigParseError):
        UserDatabase.load(path)


def test_undecodable_file_raises_parse_error(tmp_path: Path) -> None:
    path = tmp_path / "db.json"
    path.write_bytes(b'{"version": 3, "users": {"\xff": {}}}')
    with pytest.raises(ConfigParseError):
        UserDatabase.load(path)


@pytest.mark.parametrize("version", [1, 3])
def test_users_must_be_an_object(tmp_path: Path, version: int) -> None:
    path = tmp_path / "db.json"
    path.write_text(json.dumps({"version": version, "users": [1]}))
    with pytest.raises(ConfigParseError, match="users must be an object"):
        UserDatabase.load(path)


def test_failed_save_keeps_state_dirty(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    db = UserDatabase()
    db.bind_verification("1", "2025E", "uuid-1", "Alice", [])
    with pytest.raises(StateSaveError):
        db.save(blocker / "db.json")
    assert db.dirty
    assert db.user_count() == 1


def test_bind_rejects_id_owned_by_other_account() -> None:
    db = UserDatabase()
    assert db.bind_verification("A", "2025E", "uuid-1", "Alice", []).ok
    result = db.bind_verification("B", "2025E", "uuid-1", "Alice", [])
    assert result.outcome is BindOutcome.ID_IN_USE
    assert db.find_by_discord_id("B") is None


def test_bind_rejects_second_id_in_same_season() -> None:
    db = UserDatabase()
    db.bind_verification("A", "2025E", "uuid-1", "Alice", [])
    before = db.find_by_discord_id("A").model_dump()
    result = db.bind_verification("A", "2025E", "uuid-2", "Alicia", [])
    assert result.outcome is BindOutcome.ALREADY_VERIFIED
    assert db.find_by_discord_id("A").model_dump() == before


def test_bind_merges_new_season() -> None:
    db = UserDatabase()
    db.bind_verification("A", "2025E", "uuid-1", "Alice", ["Tutor"])
    result = db.bind_verification("A", "2025F", "uuid-9", "Alice B", ["Tutor", "Staff"])
    assert result.outcome is BindOutcome.MERGED
    user = db.find_by_discord_id("A")
    assert user.verification_ids == {"2025E": "uuid-1", "2025F": "uuid-9"}
    assert user.special_roles == ["Tutor", "Staff"]
    assert user.display_name == "Alice B"
    assert [u.discord_id for u in db.users_by_season("2025F")] == ["A"]


@pytest.mark.parametrize("status", [VerificationStatus.REVOKED, VerificationStatus.EXPIRED])
def test_new_season_reinstates_lapsed_user(status: VerificationStatus) -> None:
    db = UserDatabase()
    db.bind_verification("A", "2025E", "uuid-1", "Alice", [])
    db.set_status("A", status)
    assert not db.is_verified("A")

    result = db.bind_verification("A", "2025F", "uuid-9", "Alice", [])
    assert result.outcome is BindOutcome.MERGED
    assert db.is_verified("A")


def test_record_roles_and_status() -> None:
    db = UserDatabase()
    db.upsert_user(TrackedUser(discord_id="5", display_name="Eve"))
    db.record_roles("5", ["Member", "Member"])
    assert db.find_by_discord_id("5").current_roles == ["Member"]
    assert db.set_status("5", VerificationStatus.REVOKED)
    assert not db.is_verified("5")
    assert not db.set_status("404", VerificationStatus.REVOKED)


def test_export_is_json(tmp_path: Path) -> None:
    db = UserDatabase()
    db.bind_verification("1", "2025E", "uuid-1", "Alice", [])
    exported = json.loads(db.export())
    assert exported["users"]["1"]["display_name"] == "Alice"
