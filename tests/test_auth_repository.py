from __future__ import annotations

from pathlib import Path

import pytest

from app.auth.repository import UserAlreadyExistsError, UserRepository
from tests.factories import make_user


def test_user_repository_create_and_get_case_insensitive(tmp_path: Path) -> None:
    repo = UserRepository(tmp_path)
    user = make_user(email="User@Test.Local")

    repo.create(user)
    found = repo.get_by_email("  USER@test.local ")

    assert found is not None
    assert found.user_id == user.user_id
    assert found.email == "user@test.local"
    assert repo.get_by_id(user.user_id) is not None


def test_user_repository_rejects_duplicate_email(tmp_path: Path) -> None:
    repo = UserRepository(tmp_path)
    repo.create(make_user(email="dup@test.local"))

    with pytest.raises(UserAlreadyExistsError):
        repo.create(make_user(email="DUP@test.local"))


def test_user_repository_upsert_replaces_document(tmp_path: Path) -> None:
    repo = UserRepository(tmp_path)
    user = repo.create(make_user())

    user.name = "Renamed"
    user.is_email_verified = True
    repo.upsert(user)
    stored = repo.get_by_id(user.user_id)

    assert stored is not None
    assert stored.name == "Renamed"
    assert stored.is_email_verified is True
    assert len(list((tmp_path / "runtime" / "store").glob("users.json"))) == 1


def test_user_repository_upsert_cannot_steal_email(tmp_path: Path) -> None:
    repo = UserRepository(tmp_path)
    repo.create(make_user(email="first@test.local"))
    second = repo.create(make_user(email="second@test.local"))

    second.email = "first@test.local"
    with pytest.raises(UserAlreadyExistsError):
        repo.upsert(second)


def test_user_repository_upsert_cannot_claim_linked_google_id(tmp_path: Path) -> None:
    repo = UserRepository(tmp_path)
    repo.create(make_user(email="first@test.local", password=None, google_id="google-123"))
    second = repo.create(make_user(email="second@test.local"))

    second.google_id = "google-123"
    with pytest.raises(UserAlreadyExistsError):
        repo.upsert(second)

    assert repo.get_by_email("second@test.local").google_id is None


def test_user_repository_finds_federated_account(tmp_path: Path) -> None:
    repo = UserRepository(tmp_path)
    user = repo.create(make_user(password=None, google_id="google-123"))

    found = repo.get_by_google_id("google-123")

    assert found is not None
    assert found.user_id == user.user_id
    assert found.password_hash is None
    assert repo.get_by_google_id("") is None


def test_user_repository_handles_corrupted_users_file(tmp_path: Path) -> None:
    repo = UserRepository(tmp_path)
    users_file = tmp_path / "runtime" / "store" / "users.json"
    users_file.write_text("{not json", encoding="utf-8")

    assert repo.get_by_email("anyone@test.local") is None
