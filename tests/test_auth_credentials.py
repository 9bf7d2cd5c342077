from __future__ import annotations

from app.auth.credentials import compare_password, set_password
from tests.factories import TEST_PASSWORD, make_user


def test_set_password_without_plaintext_keeps_hash() -> None:
    user = make_user()
    original = user.password_hash

    assert set_password(user, None, rounds=4) is False
    assert set_password(user, "", rounds=4) is False
    assert user.password_hash == original


def test_set_password_rehashes_new_plaintext() -> None:
    user = make_user()
    original = user.password_hash

    assert set_password(user, "N3w!Password", rounds=4) is True
    assert user.password_hash != original
    assert compare_password(user, "N3w!Password") is True
    assert compare_password(user, TEST_PASSWORD) is False


def test_compare_password_never_matches_federated_user() -> None:
    user = make_user(password=None, google_id="google-1")

    assert compare_password(user, "") is False
    assert compare_password(user, TEST_PASSWORD) is False
