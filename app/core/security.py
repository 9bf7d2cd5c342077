"""Security primitives for password hashing and token signing."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from typing import Any

import bcrypt

BCRYPT_MAX_PASSWORD_BYTES = 72


class TokenError(ValueError):
    """Base error for signed token failures."""


class TokenInvalidError(TokenError):
    """Token is malformed or its signature does not verify."""


class TokenExpiredError(TokenError):
    """Token signature is valid but its ``exp`` claim is in the past."""


def _b64url_encode(raw: bytes) -> str:
    """Return URL-safe base64 string without padding."""
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    """Decode URL-safe base64 string with optional missing padding."""
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def _password_bytes(password: str) -> bytes:
    # bcrypt only consumes the first 72 bytes; newer releases refuse longer input.
    return password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash password with bcrypt using the given cost factor."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(password: str, stored_hash: str | None) -> bool:
    """Verify password against a stored bcrypt hash; never raises."""
    if not stored_hash:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(password), stored_hash.encode("utf-8"))
    except ValueError:
        return False


def build_signed_token(payload: dict[str, Any], secret_key: str) -> str:
    """Create compact signed token using JWT-like 3-part structure."""
    header = {"alg": "HS256", "typ": "JWT"}
    header_part = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_part = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    signature = hmac.new(secret_key.encode("utf-8"), signing_input, hashlib.sha256).digest()
    signature_part = _b64url_encode(signature)
    return f"{header_part}.{payload_part}.{signature_part}"


def decode_signed_token(
    token: str, secret_key: str, *, now: int | None = None
) -> dict[str, Any]:
    """Decode and verify compact signed token.

    Raises ``TokenInvalidError`` for malformed or forged tokens and
    ``TokenExpiredError`` once the signature checks out but ``exp`` has passed.
    """
    parts = (token or "").split(".")
    if len(parts) != 3 or not all(parts):
        raise TokenInvalidError("Malformed token")
    header_part, payload_part, signature_part = parts

    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    expected_sig = hmac.new(secret_key.encode("utf-8"), signing_input, hashlib.sha256).digest()
    try:
        got_sig = _b64url_decode(signature_part)
    except (binascii.Error, ValueError) as exc:
        raise TokenInvalidError("Malformed token signature") from exc
    if not hmac.compare_digest(expected_sig, got_sig):
        raise TokenInvalidError("Invalid token signature")

    try:
        payload = json.loads(_b64url_decode(payload_part).decode("utf-8"))
    except (binascii.Error, ValueError) as exc:
        raise TokenInvalidError("Invalid token payload") from exc
    if not isinstance(payload, dict):
        raise TokenInvalidError("Invalid token payload")

    current = int(time.time()) if now is None else now
    exp = int(payload.get("exp") or 0)
    if exp and exp <= current:
        raise TokenExpiredError("Token expired")

    return payload
