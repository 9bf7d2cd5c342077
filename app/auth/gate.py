"""Authentication gate: bearer validation, identity context, role and verification checks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol

from fastapi import Depends, Header, Request

from app.api.errors import ApiError, ApiErrorCode
from app.auth.models import IdentityContext, Role, User
from app.auth.tokens import TokenService
from app.core.security import TokenError, TokenExpiredError

LOGGER = logging.getLogger(__name__)


class UserLookup(Protocol):
    """Store operation the gate needs."""

    def get_by_id(self, user_id: str) -> User | None:
        """Return user by id, or ``None``."""


def extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from authorization header value."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def _invalid_token() -> ApiError:
    return ApiError(
        status_code=401,
        error_code=ApiErrorCode.AUTH_TOKEN_INVALID,
        message="Invalid token",
    )


class AuthGate:
    """Turns an ``Authorization`` header into an ``IdentityContext`` or a rejection."""

    def __init__(self, *, repo: UserLookup, tokens: TokenService) -> None:
        self._repo = repo
        self._tokens = tokens

    def authenticate(self, authorization: str | None) -> IdentityContext:
        """Validate a mandatory bearer token."""
        token = extract_bearer_token(authorization)
        if not token:
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.AUTH_MISSING_TOKEN,
                message="Access token is required",
            )

        try:
            payload = self._tokens.decode_access_token(token)
        except TokenExpiredError as exc:
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.AUTH_TOKEN_EXPIRED,
                message="Token expired",
            ) from exc
        except TokenError as exc:
            LOGGER.debug("access_token_rejected: %s", exc)
            raise _invalid_token() from exc

        user = self._repo.get_by_id(str(payload.get("sub")))
        if user is None:
            LOGGER.info("access_token_unknown_subject")
            raise _invalid_token()
        if not user.is_active:
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.AUTH_ACCOUNT_DEACTIVATED,
                message="Account is deactivated",
            )
        return IdentityContext.from_user(user)

    def authenticate_optional(self, authorization: str | None) -> IdentityContext | None:
        """Like ``authenticate`` but any failure yields an anonymous request."""
        if not extract_bearer_token(authorization):
            return None
        try:
            return self.authenticate(authorization)
        except ApiError:
            return None

    @staticmethod
    def authorize(
        identity: IdentityContext | None, roles: Iterable[Role | str]
    ) -> IdentityContext:
        """Require an identity whose role is in ``roles``."""
        if identity is None:
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.AUTH_REQUIRED,
                message="Authentication required",
            )
        allowed = {str(role) for role in roles}
        if str(identity.role) not in allowed:
            raise ApiError(
                status_code=403,
                error_code=ApiErrorCode.AUTH_FORBIDDEN,
                message="Access denied - insufficient permissions",
            )
        return identity

    @staticmethod
    def require_verified(identity: IdentityContext | None) -> IdentityContext:
        """Require an identity with a confirmed email address."""
        if identity is None:
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.AUTH_REQUIRED,
                message="Authentication required",
            )
        if not identity.is_email_verified:
            raise ApiError(
                status_code=403,
                error_code=ApiErrorCode.AUTH_VERIFICATION_REQUIRED,
                message="Email verification required",
            )
        return identity


@dataclass(frozen=True)
class AuthDependencies:
    """FastAPI dependencies bound to one ``AuthGate``."""

    gate: AuthGate
    required: Callable[..., IdentityContext]
    optional: Callable[..., IdentityContext | None]
    verified: Callable[..., IdentityContext]

    def roles(self, *roles: Role | str) -> Callable[..., IdentityContext]:
        """Dependency requiring an authenticated identity with one of ``roles``."""
        gate = self.gate

        def role_identity(
            identity: IdentityContext = Depends(self.required),
        ) -> IdentityContext:
            return gate.authorize(identity, roles)

        return role_identity

    def verified_roles(self, *roles: Role | str) -> Callable[..., IdentityContext]:
        """Role gate followed by the verification gate."""
        gate = self.gate
        role_dependency = self.roles(*roles)

        def verified_role_identity(
            identity: IdentityContext = Depends(role_dependency),
        ) -> IdentityContext:
            return gate.require_verified(identity)

        return verified_role_identity


def create_auth_dependencies(gate: AuthGate) -> AuthDependencies:
    """Build request dependencies for mandatory, optional and verified auth.

    The resolved user id is kept on ``request.state`` for the request log.
    """

    def required_identity(
        request: Request,
        authorization: str | None = Header(default=None),
    ) -> IdentityContext:
        identity = gate.authenticate(authorization)
        request.state.user_id = identity.user_id
        return identity

    def optional_identity(
        request: Request,
        authorization: str | None = Header(default=None),
    ) -> IdentityContext | None:
        identity = gate.authenticate_optional(authorization)
        if identity is not None:
            request.state.user_id = identity.user_id
        return identity

    def verified_identity(
        identity: IdentityContext = Depends(required_identity),
    ) -> IdentityContext:
        return gate.require_verified(identity)

    return AuthDependencies(
        gate=gate,
        required=required_identity,
        optional=optional_identity,
        verified=verified_identity,
    )
