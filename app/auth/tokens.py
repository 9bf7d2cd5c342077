"""Access/refresh token issuance, validation and refresh-token rotation."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable

from app.api.errors import ApiError, ApiErrorCode
from app.auth.models import RefreshTokenRecord, User
from app.core.config import AuthConfig
from app.core.security import (
    TokenError,
    TokenInvalidError,
    build_signed_token,
    decode_signed_token,
)

LOGGER = logging.getLogger(__name__)

MAX_ACTIVE_REFRESH_TOKENS = 5
REFRESH_TOKEN_RETENTION_SECONDS = 7 * 24 * 60 * 60

ACCESS = "access"
REFRESH = "refresh"
VERIFY_EMAIL = "verify_email"
RESET_PASSWORD = "reset_password"


def invalid_refresh_token_error() -> ApiError:
    """Single outward failure for every refresh-token rejection."""
    return ApiError(
        status_code=401,
        error_code=ApiErrorCode.AUTH_TOKEN_INVALID,
        message="Invalid refresh token",
    )


def prune_expired_refresh_tokens(user: User, *, now: int | None = None) -> None:
    """Drop refresh-token records older than the retention window."""
    current = int(time.time()) if now is None else now
    cutoff = current - REFRESH_TOKEN_RETENTION_SECONDS
    user.refresh_tokens = [r for r in user.refresh_tokens if r.issued_at > cutoff]


def add_refresh_token(user: User, token: str, *, now: int | None = None) -> None:
    """Append a refresh token, keeping only the most recently added ones (FIFO)."""
    issued_at = int(time.time()) if now is None else now
    user.refresh_tokens.append(RefreshTokenRecord(token=token, issued_at=issued_at))
    if len(user.refresh_tokens) > MAX_ACTIVE_REFRESH_TOKENS:
        user.refresh_tokens = user.refresh_tokens[-MAX_ACTIVE_REFRESH_TOKENS:]


def remove_refresh_token(user: User, token: str) -> None:
    """Remove a refresh token by exact match; absent tokens are ignored."""
    user.refresh_tokens = [r for r in user.refresh_tokens if r.token != token]


def has_refresh_token(user: User, token: str) -> bool:
    return any(r.token == token for r in user.refresh_tokens)


class TokenService:
    """Signs and verifies the tokens used by the auth flows."""

    def __init__(
        self, config: AuthConfig, *, clock: Callable[[], float] = time.time
    ) -> None:
        self._config = config
        self._clock = clock

    @property
    def access_token_ttl_seconds(self) -> int:
        return self._config.access_token_ttl_seconds

    def now(self) -> int:
        return int(self._clock())

    def _sign(
        self, user: User, token_type: str, ttl_seconds: int, secret_key: str, **claims: Any
    ) -> str:
        now_ts = self.now()
        payload = {
            "iss": self._config.issuer,
            "sub": user.user_id,
            "type": token_type,
            "iat": now_ts,
            "exp": now_ts + ttl_seconds,
            "jti": uuid.uuid4().hex,
            **claims,
        }
        return build_signed_token(payload, secret_key)

    def _decode(self, token: str, *, expected_type: str, secret_key: str) -> dict[str, Any]:
        payload = decode_signed_token(token, secret_key, now=self.now())
        if str(payload.get("iss") or "") != self._config.issuer:
            raise TokenInvalidError("Invalid token issuer")
        if str(payload.get("type") or "") != expected_type:
            raise TokenInvalidError("Invalid token type")
        if not str(payload.get("sub") or ""):
            raise TokenInvalidError("Token has no subject")
        return payload

    def issue_access_token(self, user: User) -> str:
        """Short-lived bearer token carrying user id and role."""
        return self._sign(
            user,
            ACCESS,
            self._config.access_token_ttl_seconds,
            self._config.secret_key,
            role=str(user.role),
        )

    def issue_refresh_token(self, user: User) -> str:
        """Long-lived token; the caller persists it with ``add_refresh_token``."""
        return self._sign(
            user,
            REFRESH,
            self._config.refresh_token_ttl_seconds,
            self._config.refresh_secret_key,
        )

    def decode_access_token(self, token: str) -> dict[str, Any]:
        return self._decode(token, expected_type=ACCESS, secret_key=self._config.secret_key)

    def decode_refresh_token(self, token: str) -> dict[str, Any]:
        return self._decode(
            token, expected_type=REFRESH, secret_key=self._config.refresh_secret_key
        )

    def issue_purpose_token(self, user: User, purpose: str) -> tuple[str, int]:
        """Issue an email-verification or password-reset token and its expiry."""
        ttl = (
            self._config.email_verification_ttl_seconds
            if purpose == VERIFY_EMAIL
            else self._config.password_reset_ttl_seconds
        )
        token = self._sign(user, purpose, ttl, self._config.secret_key, email=user.email)
        return token, self.now() + ttl

    def decode_purpose_token(self, token: str, purpose: str) -> dict[str, Any]:
        return self._decode(token, expected_type=purpose, secret_key=self._config.secret_key)

    def rotate_refresh_token(self, old_token: str, user: User) -> str:
        """Replace an active refresh token with a freshly issued one.

        Forged, expired, malformed and already-rotated tokens all fail with the
        same ``AUTH_TOKEN_INVALID`` error.
        """
        try:
            payload = self.decode_refresh_token(old_token)
        except TokenError as exc:
            LOGGER.info(
                "refresh_rotation_rejected: %s", exc, extra={"user_id": user.user_id}
            )
            raise invalid_refresh_token_error() from exc

        now_ts = self.now()
        prune_expired_refresh_tokens(user, now=now_ts)
        if payload.get("sub") != user.user_id or not has_refresh_token(user, old_token):
            LOGGER.info(
                "refresh_rotation_rejected: token not active",
                extra={"user_id": user.user_id},
            )
            raise invalid_refresh_token_error()

        new_token = self.issue_refresh_token(user)
        remove_refresh_token(user, old_token)
        add_refresh_token(user, new_token, now=now_ts)
        return new_token
