"""Password helpers operating on an explicit user record."""

from __future__ import annotations

from app.auth.models import User
from app.core.security import hash_password, verify_password


def set_password(user: User, plaintext: str | None, *, rounds: int = 12) -> bool:
    """Hash and store a new plaintext password.

    Returns ``False`` and leaves the stored hash untouched when no new plaintext
    was supplied, so unchanged hashes are never re-hashed.
    """
    if not plaintext:
        return False
    user.password_hash = hash_password(plaintext, rounds=rounds)
    return True


def compare_password(user: User, candidate: str) -> bool:
    """Compare a candidate against the stored hash; federated-only users never match."""
    if not user.password_hash or not candidate:
        return False
    return verify_password(candidate, user.password_hash)
