from __future__ import annotations

import pytest

from app.api.errors import ApiError
from app.auth.gate import AuthGate, extract_bearer_token
from app.auth.models import IdentityContext, Role, User
from app.auth.tokens import VERIFY_EMAIL, TokenService
from tests.factories import auth_config, make_user


class _Clock:
    def __init__(self, now: float = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class _Users:
    def __init__(self, *users: User) -> None:
        self._users = {user.user_id: user for user in users}

    def get_by_id(self, user_id: str) -> User | None:
        return self._users.get(user_id)


def _error(call, *args) -> ApiError:
    with pytest.raises(ApiError) as exc:
        call(*args)
    return exc.value


def test_extract_bearer_token_requires_scheme() -> None:
    assert extract_bearer_token("Bearer abc") == "abc"
    assert extract_bearer_token("bearer  abc ") == "abc"
    assert extract_bearer_token("Basic abc") == ""
    assert extract_bearer_token("Bearer") == ""
    assert extract_bearer_token(None) == ""


def test_authenticate_returns_identity_for_valid_token() -> None:
    tokens = TokenService(auth_config(), clock=_Clock())
    user = make_user(role=Role.INSTRUCTOR, is_email_verified=True)
    gate = AuthGate(repo=_Users(user), tokens=tokens)

    identity = gate.authenticate(f"Bearer {tokens.issue_access_token(user)}")

    assert identity.user_id == user.user_id
    assert identity.role == Role.INSTRUCTOR
    assert identity.is_email_verified is True
    assert not hasattr(identity, "password_hash")


def test_authenticate_rejects_missing_token() -> None:
    gate = AuthGate(repo=_Users(), tokens=TokenService(auth_config()))

    error = _error(gate.authenticate, None)

    assert error.status_code == 401
    assert error.detail["error_code"] == "AUTH_MISSING_TOKEN"
    assert error.detail["message"] == "Access token is required"


def test_authenticate_rejects_garbage_and_foreign_tokens() -> None:
    tokens = TokenService(auth_config(), clock=_Clock())
    user = make_user()
    gate = AuthGate(repo=_Users(user), tokens=tokens)
    purpose_token, _ = tokens.issue_purpose_token(user, VERIFY_EMAIL)

    for header in (
        "Bearer garbage",
        f"Bearer {tokens.issue_refresh_token(user)}",
        f"Bearer {purpose_token}",
    ):
        error = _error(gate.authenticate, header)
        assert error.status_code == 401
        assert error.detail["error_code"] == "AUTH_TOKEN_INVALID"
        assert error.detail["message"] == "Invalid token"


def test_authenticate_reports_expired_token() -> None:
    clock = _Clock()
    tokens = TokenService(auth_config(), clock=clock)
    user = make_user()
    gate = AuthGate(repo=_Users(user), tokens=tokens)
    token = tokens.issue_access_token(user)

    clock.now += 901
    error = _error(gate.authenticate, f"Bearer {token}")

    assert error.status_code == 401
    assert error.detail["error_code"] == "AUTH_TOKEN_EXPIRED"
    assert error.detail["message"] == "Token expired"


def test_authenticate_rejects_unknown_subject() -> None:
    tokens = TokenService(auth_config(), clock=_Clock())
    gate = AuthGate(repo=_Users(), tokens=tokens)

    error = _error(gate.authenticate, f"Bearer {tokens.issue_access_token(make_user())}")

    assert error.detail["error_code"] == "AUTH_TOKEN_INVALID"


def test_authenticate_rejects_deactivated_user_with_valid_token() -> None:
    tokens = TokenService(auth_config(), clock=_Clock())
    user = make_user(is_active=False)
    gate = AuthGate(repo=_Users(user), tokens=tokens)

    error = _error(gate.authenticate, f"Bearer {tokens.issue_access_token(user)}")

    assert error.status_code == 401
    assert error.detail["error_code"] == "AUTH_ACCOUNT_DEACTIVATED"


def test_authenticate_optional_never_rejects() -> None:
    tokens = TokenService(auth_config(), clock=_Clock())
    user = make_user()
    gate = AuthGate(repo=_Users(user), tokens=tokens)

    assert gate.authenticate_optional(None) is None
    assert gate.authenticate_optional("Bearer garbage") is None
    identity = gate.authenticate_optional(f"Bearer {tokens.issue_access_token(user)}")
    assert identity is not None and identity.user_id == user.user_id


def _identity(role: Role = Role.STUDENT, *, verified: bool = False) -> IdentityContext:
    return IdentityContext(
        user_id="507f1f77bcf86cd799439011",
        name="Test User",
        email="student@example.com",
        role=role,
        is_active=True,
        is_email_verified=verified,
    )


def test_authorize_checks_presence_then_role() -> None:
    anonymous = _error(AuthGate.authorize, None, [Role.ADMIN])
    forbidden = _error(AuthGate.authorize, _identity(), [Role.INSTRUCTOR, Role.ADMIN])

    assert anonymous.status_code == 401
    assert anonymous.detail["error_code"] == "AUTH_REQUIRED"
    assert forbidden.status_code == 403
    assert forbidden.detail["message"] == "Access denied - insufficient permissions"
    admin = _identity(Role.ADMIN)
    assert AuthGate.authorize(admin, ["instructor", "admin"]) is admin


def test_require_verified_blocks_unconfirmed_email() -> None:
    error = _error(AuthGate.require_verified, _identity())

    assert error.status_code == 403
    assert error.detail["error_code"] == "AUTH_VERIFICATION_REQUIRED"
    assert AuthGate.require_verified(_identity(verified=True)).is_email_verified is True
    assert _error(AuthGate.require_verified, None).status_code == 401
