"""Tests for the verification engine."""

import json
import threading
from pathlib import Path

import pytest

from roster_bot.core import verification as verification_mod
from roster_bot.core.config_store import ConfigStore
from roster_bot.core.user_database import UserDatabase, VerificationStatus
from roster_bot.core.verification import VerificationEngine, VerificationFailure


def write(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


@pytest.fixture()
def engine(tmp_path: Path) -> VerificationEngine:
    write(
        tmp_path / "seasons" / "2025E" / "users.json",
        [
            {"Name": "Alice", "DiscordId": "uuid-1"},
            {"Name": "Bob", "DiscordId": "uuid-2"},
        ],
    )
    write(
        tmp_path / "seasons" / "2025F" / "users.json",
        [{"Name": "Alice F", "DiscordId": "uuid-10"}],
    )
    write(
        tmp_path / "global" / "assignments.json",
        {"roles": {"Tutor": ["uuid-1"], "Member": ["uuid-1"]}},
    )
    store = ConfigStore(tmp_path)
    store.load_all()
    return VerificationEngine(store, UserDatabase())


def test_successful_verification(engine: VerificationEngine) -> None:
    result = engine.attempt_verification(111, "uuid-1")
    assert result.success
    assert result.display_name == "Alice"
    assert result.season_id == "2025E"
    assert result.roles_to_assign[0] == "Member"
    # the default role is not repeated when also granted as a special role
    assert result.roles_to_assign == ["Member", "Tutor"]
    assert engine.is_verified(111)
    user = engine.get_verified_user("111")
    assert user.verification_ids == {"2025E": "uuid-1"}


def test_id_used_by_another_account(engine: VerificationEngine) -> None:
    assert engine.attempt_verification("A", "uuid-1").success
    before = engine.get_verified_user("A").model_dump()

    result = engine.attempt_verification("B", "uuid-1")
    assert not result.success
    assert result.failure is VerificationFailure.ID_IN_USE
    assert "already been used" in result.error
    assert engine.get_verified_user("B") is None
    assert engine.get_verified_user("A").model_dump() == before


def test_unknown_id(engine: VerificationEngine) -> None:
    result = engine.attempt_verification("A", "uuid-404")
    assert not result.success
    assert result.failure is VerificationFailure.NOT_FOUND
    assert "uuid-404" in result.error
    assert engine.user_db.user_count() == 0


def test_blank_id_is_not_found(engine: VerificationEngine) -> None:
    result = engine.attempt_verification("A", "   ")
    assert result.failure is VerificationFailure.NOT_FOUND


def test_whitespace_is_trimmed(engine: VerificationEngine) -> None:
    assert engine.attempt_verification("A", "  uuid-2\n").success


@pytest.mark.parametrize("second_id", ["uuid-1", "uuid-2"])
def test_already_verified_for_season(engine: VerificationEngine, second_id: str) -> None:
    assert engine.attempt_verification("A", "uuid-1").success
    before = engine.user_db.export()

    result = engine.attempt_verification("A", second_id)
    assert not result.success
    assert result.failure is VerificationFailure.ALREADY_VERIFIED
    assert "already verified for season 2025E" in result.error
    assert engine.user_db.export() == before


def test_verification_for_second_season_merges(engine: VerificationEngine) -> None:
    assert engine.attempt_verification("A", "uuid-1").success
    result = engine.attempt_verification("A", "uuid-10")
    assert result.success
    assert result.season_id == "2025F"
    user = engine.get_verified_user("A")
    assert user.verification_ids == {"2025E": "uuid-1", "2025F": "uuid-10"}
    assert user.display_name == "Alice F"


def test_second_season_skips_roles_already_held(engine: VerificationEngine) -> None:
    assert engine.attempt_verification("A", "uuid-1").success
    engine.user_db.record_roles("A", ["Member", "Tutor"])

    result = engine.attempt_verification("A", "uuid-10")
    assert result.success
    assert result.roles_to_assign == []


def test_restore_verification_grants_stored_roles(engine: VerificationEngine) -> None:
    assert engine.restore_verification("A") is None
    assert engine.attempt_verification("A", "uuid-1").success
    engine.user_db.record_roles("A", ["Member", "Tutor"])
    engine.start_verification("A")

    restored = engine.restore_verification("A")
    assert restored.success
    assert restored.display_name == "Alice"
    assert restored.season_id == "2025E"
    assert restored.roles_to_assign == ["Member", "Tutor"]
    assert not engine.is_pending("A")


def test_restore_verification_ignores_revoked(engine: VerificationEngine) -> None:
    assert engine.attempt_verification("A", "uuid-1").success
    engine.user_db.set_status("A", VerificationStatus.REVOKED)
    assert engine.restore_verification("A") is None


def test_concurrent_attempts_bind_once(engine: VerificationEngine) -> None:
    results = []
    barrier = threading.Barrier(8)

    def attempt(n: int) -> None:
        barrier.wait()
        results.append(engine.attempt_verification(f"user-{n}", "uuid-2"))

    threads = [threading.Thread(target=attempt, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(r.success for r in results) == 1
    assert len(engine.user_db.users_by_season("2025E")) == 1


def test_pending_registry(engine: VerificationEngine) -> None:
    engine.start_verification(5, channel_id=9, guild_id=3)
    assert engine.is_pending("5")
    assert engine.get_pending(5).guild_id == 3
    engine.cancel_verification(5)
    assert not engine.is_pending(5)


def test_success_clears_pending(engine: VerificationEngine) -> None:
    engine.start_verification("A")
    assert not engine.attempt_verification("A", "uuid-404").success
    assert engine.is_pending("A")
    assert engine.attempt_verification("A", "uuid-1").success
    assert not engine.is_pending("A")


def test_cleanup_stale_pending(engine: VerificationEngine, monkeypatch) -> None:
    monkeypatch.setattr(verification_mod, "_now", lambda: 1_000)
    engine.start_verification("old")
    monkeypatch.setattr(verification_mod, "_now", lambda: 1_000 + 3000)
    engine.start_verification("new")
    monkeypatch.setattr(verification_mod, "_now", lambda: 1_000 + 3700)
    assert engine.cleanup_stale_pending() == 1
    assert not engine.is_pending("old")
    assert engine.is_pending("new")


def test_save_and_export_database(engine: VerificationEngine, tmp_path: Path) -> None:
    engine.attempt_verification("A", "uuid-1")
    path = tmp_path / "state" / "user_database.json"
    engine.save_database(path)
    assert json.loads(path.read_text()) == json.loads(engine.export_database())
