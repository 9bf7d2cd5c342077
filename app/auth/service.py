"""Authentication service: registration, sessions, profile and account recovery."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Protocol

from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from app.api.contracts import AuthSession, AuthTokens, camelize_keys
from app.api.errors import ApiError, ApiErrorCode
from app.auth.credentials import compare_password, set_password
from app.auth.models import IdentityContext, Role, User, public_user_view
from app.auth.repository import UserAlreadyExistsError, UserRepository
from app.auth.tokens import (
    RESET_PASSWORD,
    VERIFY_EMAIL,
    TokenService,
    add_refresh_token,
    invalid_refresh_token_error,
    prune_expired_refresh_tokens,
    remove_refresh_token,
)
from app.core.config import AuthConfig
from app.core.security import TokenError, hash_password
from app.email.service import EmailDeliveryError, EmailService

LOGGER = logging.getLogger(__name__)

EDITABLE_PROFILE_FIELDS = {
    "name",
    "phone",
    "bio",
    "date_of_birth",
    "gender",
    "interests",
    "education",
    "address",
    "avatar",
}

RECENT_ACTIVITY_LIMIT = 5

SendLater = Callable[..., Any]


class CourseTitleLookup(Protocol):
    """Course store operation used to label dashboard activity."""

    def list_by_ids(self, course_ids: Iterable[str]) -> list[Any]:
        """Return courses for the given ids, skipping unknown ones."""


def _user_not_found() -> ApiError:
    return ApiError(
        status_code=404, error_code=ApiErrorCode.USER_NOT_FOUND, message="User not found"
    )


def _deactivated() -> ApiError:
    return ApiError(
        status_code=401,
        error_code=ApiErrorCode.AUTH_ACCOUNT_DEACTIVATED,
        message="Account is deactivated. Please contact support.",
    )


class AuthService:
    """Auth domain service operating on explicitly loaded user records."""

    def __init__(
        self,
        repo: UserRepository,
        tokens: TokenService,
        email: EmailService,
        config: AuthConfig,
        *,
        courses: CourseTitleLookup | None = None,
    ) -> None:
        """Initialize service dependencies."""
        self._repo = repo
        self._tokens = tokens
        self._email = email
        self._config = config
        self._courses = courses

    def bootstrap_admin_user(self) -> None:
        """Ensure the configured bootstrap admin user exists."""
        if not self._config.admin_email or not self._config.admin_password:
            return
        if self._repo.get_by_email(self._config.admin_email) is not None:
            return
        try:
            self._repo.create(
                User(
                    name="Administrator",
                    email=self._config.admin_email,
                    password_hash=hash_password(
                        self._config.admin_password, rounds=self._config.bcrypt_rounds
                    ),
                    role=Role.ADMIN,
                    is_email_verified=True,
                )
            )
        except UserAlreadyExistsError:
            return
        LOGGER.info("bootstrap_admin_created")

    # Sessions

    def _issue_session(self, user: User) -> AuthSession:
        """Issue an access/refresh pair and persist the refresh token on the user."""
        now_ts = self._tokens.now()
        access_token = self._tokens.issue_access_token(user)
        refresh_token = self._tokens.issue_refresh_token(user)
        prune_expired_refresh_tokens(user, now=now_ts)
        add_refresh_token(user, refresh_token, now=now_ts)
        self._repo.upsert(user)
        return AuthSession(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self._tokens.access_token_ttl_seconds,
            user=public_user_view(user),
        )

    def _send_quietly(
        self, recipient: str, template_name: str, template_args: dict[str, Any]
    ) -> None:
        try:
            self._email.send(recipient, template_name, template_args)
        except EmailDeliveryError:
            LOGGER.warning("email_background_delivery_failed: %s", template_name)

    def _dispatch_email(
        self,
        send_later: SendLater | None,
        recipient: str,
        template_name: str,
        template_args: dict[str, Any],
    ) -> None:
        if send_later is None:
            self._send_quietly(recipient, template_name, template_args)
        else:
            send_later(self._send_quietly, recipient, template_name, template_args)

    def register(
        self, payload: dict[str, Any], *, send_later: SendLater | None = None
    ) -> AuthSession:
        """Create a password account and sign it in; the verification email is fire-and-forget."""
        conflict = ApiError(
            status_code=400,
            error_code=ApiErrorCode.CONFLICT,
            message="User already exists with this email",
        )
        if self._repo.get_by_email(payload["email"]) is not None:
            raise conflict

        user = User(
            name=payload["name"],
            email=payload["email"],
            password_hash=hash_password(payload["password"], rounds=self._config.bcrypt_rounds),
        )
        token, expires_at = self._tokens.issue_purpose_token(user, VERIFY_EMAIL)
        user.email_verification_token = token
        user.email_verification_expires_at = expires_at
        try:
            self._repo.create(user)
        except UserAlreadyExistsError as exc:
            raise conflict from exc

        session = self._issue_session(user)
        LOGGER.info("user_registered", extra={"user_id": user.user_id})
        self._dispatch_email(
            send_later,
            user.email,
            "verification",
            {
                "verification_url": f"{self._config.client_url}/verify-email/{token}",
                "user_name": user.name,
            },
        )
        return session

    def login(self, email: str, password: str) -> AuthSession:
        """Authenticate credentials and issue a session."""
        user = self._repo.get_by_email(email)
        if user is None or not compare_password(user, password):
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.AUTH_INVALID_CREDENTIALS,
                message="Invalid email or password",
            )
        if not user.is_active:
            raise _deactivated()
        user.last_login_at = self._tokens.now()
        return self._issue_session(user)

    def google_auth(self, payload: dict[str, Any]) -> AuthSession:
        """Sign in with a federated Google identity.

        A password account that shares the email is never linked implicitly;
        the owner links it through ``link_google`` while signed in.
        """
        google_id = payload["googleId"]
        avatar = payload.get("avatar") or ""

        user = self._repo.get_by_google_id(google_id)
        if user is None:
            if self._repo.get_by_email(payload["email"]) is not None:
                raise ApiError(
                    status_code=400,
                    error_code=ApiErrorCode.AUTH_ACCOUNT_LINK_REQUIRED,
                    message=(
                        "An account with this email already exists. "
                        "Sign in with your password and link your Google account."
                    ),
                )
            user = User(
                name=payload["name"],
                email=payload["email"],
                google_id=google_id,
                avatar=avatar,
                is_email_verified=True,
            )
            try:
                self._repo.create(user)
            except UserAlreadyExistsError as exc:
                raise ApiError(
                    status_code=400,
                    error_code=ApiErrorCode.CONFLICT,
                    message="User already exists with this email",
                ) from exc
            LOGGER.info("user_registered_google", extra={"user_id": user.user_id})
        elif not user.is_active:
            raise _deactivated()
        else:
            if not user.avatar and avatar:
                user.avatar = avatar
            user.is_email_verified = True

        user.last_login_at = self._tokens.now()
        return self._issue_session(user)

    def link_google(self, identity: IdentityContext, google_id: str) -> dict[str, Any]:
        """Attach a Google identity to the signed-in account."""
        conflict = ApiError(
            status_code=400,
            error_code=ApiErrorCode.CONFLICT,
            message="Google account is already linked to another user",
        )
        user = self._load(identity)
        owner = self._repo.get_by_google_id(google_id)
        if owner is not None and owner.user_id != user.user_id:
            raise conflict
        user.google_id = google_id
        try:
            self._repo.upsert(user)
        except UserAlreadyExistsError as exc:
            # A concurrent link claimed the id between the lookup and the write.
            raise conflict from exc
        LOGGER.info("google_account_linked", extra={"user_id": user.user_id})
        return public_user_view(user)

    def refresh(self, refresh_token: str | None) -> AuthTokens:
        """Exchange an active refresh token for a new pair (rotation)."""
        if not refresh_token:
            raise invalid_refresh_token_error()
        try:
            claims = self._tokens.decode_refresh_token(refresh_token)
        except TokenError as exc:
            LOGGER.info("refresh_rejected: %s", exc)
            raise invalid_refresh_token_error() from exc

        user = self._repo.get_by_id(str(claims.get("sub")))
        if user is None:
            LOGGER.info("refresh_rejected: unknown subject")
            raise invalid_refresh_token_error()
        if not user.is_active:
            raise _deactivated()

        new_refresh_token = self._tokens.rotate_refresh_token(refresh_token, user)
        access_token = self._tokens.issue_access_token(user)
        self._repo.upsert(user)
        return AuthTokens(
            access_token=access_token,
            refresh_token=new_refresh_token,
            expires_in=self._tokens.access_token_ttl_seconds,
        )

    def logout(self, identity: IdentityContext, refresh_token: str | None) -> None:
        """Revoke the given refresh token; absent or unknown tokens are a no-op."""
        user = self._repo.get_by_id(identity.user_id)
        if user is None or not refresh_token:
            return
        remove_refresh_token(user, refresh_token)
        prune_expired_refresh_tokens(user, now=self._tokens.now())
        self._repo.upsert(user)

    # Profile

    def _load(self, identity: IdentityContext) -> User:
        user = self._repo.get_by_id(identity.user_id)
        if user is None:
            raise _user_not_found()
        return user

    def get_profile(self, identity: IdentityContext) -> dict[str, Any]:
        return public_user_view(self._load(identity), full=True)

    def update_profile(self, identity: IdentityContext, payload: dict[str, Any]) -> dict[str, Any]:
        """Apply editable profile fields; credential and role fields are ignored."""
        user = self._load(identity)
        updates = {
            to_snake(key): value
            for key, value in payload.items()
            if to_snake(key) in EDITABLE_PROFILE_FIELDS
        }
        try:
            updated = User.model_validate({**user.model_dump(), **updates})
        except ValidationError as exc:
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message="Validation failed",
                errors=[
                    {
                        "field": ".".join(str(part) for part in err["loc"]),
                        "message": err["msg"],
                        "value": None,
                    }
                    for err in exc.errors()
                ],
            ) from exc
        self._repo.upsert(updated)
        return public_user_view(updated, full=True)

    def update_avatar(self, identity: IdentityContext, avatar_url: str) -> dict[str, Any]:
        user = self._load(identity)
        user.avatar = avatar_url
        self._repo.upsert(user)
        return public_user_view(user)

    def change_password(self, identity: IdentityContext, payload: dict[str, Any]) -> None:
        user = self._load(identity)
        if not user.password_hash:
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message="Cannot change password for Google authenticated users",
            )
        if not compare_password(user, payload["currentPassword"]):
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message="Current password is incorrect",
            )
        set_password(user, payload["newPassword"], rounds=self._config.bcrypt_rounds)
        self._repo.upsert(user)
        LOGGER.info("password_changed", extra={"user_id": user.user_id})

    def dashboard_stats(self, identity: IdentityContext) -> dict[str, Any]:
        """Learning-record counts plus the most recent registrations and completions."""
        user = self._load(identity)
        recent_registrations = sorted(
            user.registered_courses, key=lambda item: item.registered_at, reverse=True
        )[:RECENT_ACTIVITY_LIMIT]
        recent_completions = sorted(
            user.completed_courses, key=lambda item: item.completed_at, reverse=True
        )[:RECENT_ACTIVITY_LIMIT]

        titles: dict[str, str] = {}
        if self._courses is not None:
            ids = {item.course_id for item in (*recent_registrations, *recent_completions)}
            titles = {course.course_id: course.title for course in self._courses.list_by_ids(ids)}

        def _with_title(item: Any) -> dict[str, Any]:
            row = camelize_keys(item.model_dump(mode="json"))
            row["courseTitle"] = titles.get(item.course_id, "")
            return row

        return {
            "totalRegisteredCourses": len(user.registered_courses),
            "totalCompletedCourses": len(user.completed_courses),
            "totalCertificates": len(user.certificates),
            "totalPurchasedCourses": len(user.purchased_courses),
            "recentActivity": {
                "recentRegistrations": [_with_title(item) for item in recent_registrations],
                "recentCompletions": [_with_title(item) for item in recent_completions],
            },
        }

    # Account recovery

    def _consume_purpose_token(self, token: str, purpose: str, message: str) -> User:
        """Resolve a verification/reset token to the user still holding it."""
        invalid = ApiError(
            status_code=400, error_code=ApiErrorCode.AUTH_TOKEN_INVALID, message=message
        )
        try:
            claims = self._tokens.decode_purpose_token(token, purpose)
        except TokenError as exc:
            LOGGER.info("%s_token_rejected: %s", purpose, exc)
            raise invalid from exc

        user = self._repo.get_by_id(str(claims.get("sub")))
        if user is None:
            raise invalid
        if purpose == VERIFY_EMAIL:
            stored, expires_at = user.email_verification_token, user.email_verification_expires_at
        else:
            stored, expires_at = user.password_reset_token, user.password_reset_expires_at
        if stored != token or (expires_at or 0) <= self._tokens.now():
            raise invalid
        return user

    def verify_email(self, token: str, *, send_later: SendLater | None = None) -> None:
        user = self._consume_purpose_token(
            token, VERIFY_EMAIL, "Invalid or expired verification token"
        )
        user.is_email_verified = True
        user.email_verification_token = None
        user.email_verification_expires_at = None
        self._repo.upsert(user)
        LOGGER.info("email_verified", extra={"user_id": user.user_id})
        self._dispatch_email(
            send_later,
            user.email,
            "welcome",
            {"user_name": user.name, "login_url": f"{self._config.client_url}/login"},
        )

    def forgot_password(self, email: str) -> None:
        """Issue a reset token and email it; delivery failure rolls the token back."""
        user = self._repo.get_by_email(email)
        if user is None:
            raise ApiError(
                status_code=404,
                error_code=ApiErrorCode.USER_NOT_FOUND,
                message="User not found with this email",
            )
        token, expires_at = self._tokens.issue_purpose_token(user, RESET_PASSWORD)
        user.password_reset_token = token
        user.password_reset_expires_at = expires_at
        self._repo.upsert(user)

        try:
            self._email.send(
                user.email,
                "password_reset",
                {
                    "reset_url": f"{self._config.client_url}/reset-password/{token}",
                    "user_name": user.name,
                },
            )
        except EmailDeliveryError as exc:
            user.password_reset_token = None
            user.password_reset_expires_at = None
            self._repo.upsert(user)
            raise ApiError(
                status_code=500,
                error_code=ApiErrorCode.EMAIL_DELIVERY_FAILED,
                message="Error sending password reset email",
            ) from exc

    def reset_password(self, token: str, password: str) -> None:
        """Set a new password from a reset token and sign out every session."""
        user = self._consume_purpose_token(token, RESET_PASSWORD, "Invalid or expired reset token")
        set_password(user, password, rounds=self._config.bcrypt_rounds)
        user.password_reset_token = None
        user.password_reset_expires_at = None
        user.refresh_tokens = []
        self._repo.upsert(user)
        LOGGER.info("password_reset", extra={"user_id": user.user_id})
