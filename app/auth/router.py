"""Authentication API router."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, File, Request, UploadFile

from app.api.contracts import ApiErrorResponse, ApiResponse
from app.api.errors import ApiError
from app.auth.gate import AuthDependencies
from app.auth.models import IdentityContext
from app.auth.rate_limiter import (
    AUTH,
    EMAIL_VERIFICATION,
    LOGIN,
    PASSWORD_RESET,
    PROFILE_UPDATE,
    REFRESH_TOKEN,
    REGISTER,
    RateLimiter,
    RateLimitPolicy,
)
from app.auth.service import AuthService
from app.uploads.service import UploadService
from app.validation.pipeline import (
    Field,
    RuleSet,
    read_json_object,
    sanitize_payload,
    validated_body,
)
from app.validation.rules import (
    CHANGE_PASSWORD,
    FORGOT_PASSWORD,
    GOOGLE_AUTH,
    LOGIN as LOGIN_RULES,
    REGISTER as REGISTER_RULES,
    RESET_PASSWORD,
    UPDATE_PROFILE,
)

GOOGLE_LINK_RULES = RuleSet(Field("googleId").required("Google ID is required"))

_AUTH_ERRORS = {
    400: {"model": ApiErrorResponse},
    401: {"model": ApiErrorResponse},
    429: {"model": ApiErrorResponse},
}
_PROTECTED_ERRORS = {
    400: {"model": ApiErrorResponse},
    401: {"model": ApiErrorResponse},
    404: {"model": ApiErrorResponse},
}


async def _optional_payload(request: Request) -> dict[str, Any]:
    """Sanitized JSON body for rule-less routes; malformed JSON reads as ``{}``."""
    try:
        payload = await read_json_object(request)
    except ApiError as exc:
        if exc.status_code == 413:
            raise
        return {}
    return sanitize_payload(payload) if isinstance(payload, dict) else {}


def create_auth_router(
    service: AuthService,
    auth: AuthDependencies,
    rate_limiter: RateLimiter,
    uploads: UploadService,
) -> APIRouter:
    """Build authentication router: sessions, profile and account recovery."""
    router = APIRouter(prefix="/api/auth", tags=["auth"])

    def limit(policy: RateLimitPolicy) -> list[Any]:
        return [Depends(rate_limiter.dependency(policy))]

    @router.post(
        "/register",
        status_code=201,
        response_model=ApiResponse,
        response_model_exclude_none=True,
        dependencies=limit(REGISTER),
        responses=_AUTH_ERRORS,
    )
    def register(
        background_tasks: BackgroundTasks,
        payload: dict[str, Any] = Depends(validated_body(REGISTER_RULES)),
    ) -> ApiResponse:
        """Create an account and return its first session."""
        session = service.register(payload, send_later=background_tasks.add_task)
        return ApiResponse(
            message="User registered successfully. Please verify your email.",
            data=session.model_dump(by_alias=True),
        )

    @router.post(
        "/login",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        dependencies=limit(LOGIN),
        responses=_AUTH_ERRORS,
    )
    def login(payload: dict[str, Any] = Depends(validated_body(LOGIN_RULES))) -> ApiResponse:
        """Authenticate credentials and return a token pair."""
        session = service.login(payload["email"], payload["password"])
        return ApiResponse(message="Login successful", data=session.model_dump(by_alias=True))

    @router.post(
        "/google-auth",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        dependencies=limit(AUTH),
        responses=_AUTH_ERRORS,
    )
    def google_auth(payload: dict[str, Any] = Depends(validated_body(GOOGLE_AUTH))) -> ApiResponse:
        session = service.google_auth(payload)
        return ApiResponse(
            message="Google authentication successful", data=session.model_dump(by_alias=True)
        )

    @router.post(
        "/google-link",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        dependencies=limit(AUTH),
        responses=_PROTECTED_ERRORS,
    )
    def google_link(
        payload: dict[str, Any] = Depends(validated_body(GOOGLE_LINK_RULES)),
        identity: IdentityContext = Depends(auth.required),
    ) -> ApiResponse:
        """Explicitly link a Google identity to the signed-in account."""
        return ApiResponse(
            message="Google account linked successfully",
            data={"user": service.link_google(identity, payload["googleId"])},
        )

    @router.post(
        "/refresh-token",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        dependencies=limit(REFRESH_TOKEN),
        responses=_AUTH_ERRORS,
    )
    def refresh_token(payload: dict[str, Any] = Depends(_optional_payload)) -> ApiResponse:
        """Rotate a refresh token into a new access/refresh pair."""
        refresh = payload.get("refreshToken")
        tokens = service.refresh(refresh if isinstance(refresh, str) else None)
        return ApiResponse(data=tokens.model_dump(by_alias=True))

    @router.post(
        "/logout",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        responses={401: {"model": ApiErrorResponse}},
    )
    def logout(
        payload: dict[str, Any] = Depends(_optional_payload),
        identity: IdentityContext = Depends(auth.required),
    ) -> ApiResponse:
        refresh = payload.get("refreshToken")
        service.logout(identity, refresh if isinstance(refresh, str) else None)
        return ApiResponse(message="Logged out successfully")

    @router.get(
        "/profile",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        responses=_PROTECTED_ERRORS,
    )
    def get_profile(identity: IdentityContext = Depends(auth.required)) -> ApiResponse:
        return ApiResponse(data=service.get_profile(identity))

    @router.put(
        "/profile",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        dependencies=limit(PROFILE_UPDATE),
        responses=_PROTECTED_ERRORS,
    )
    def update_profile(
        payload: dict[str, Any] = Depends(validated_body(UPDATE_PROFILE)),
        identity: IdentityContext = Depends(auth.required),
    ) -> ApiResponse:
        return ApiResponse(
            message="Profile updated successfully",
            data=service.update_profile(identity, payload),
        )

    @router.post(
        "/avatar",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        dependencies=limit(PROFILE_UPDATE),
        responses=_PROTECTED_ERRORS,
    )
    async def upload_avatar(
        avatar: UploadFile | None = File(default=None),
        identity: IdentityContext = Depends(auth.required),
    ) -> ApiResponse:
        """Store a profile image and point the user's avatar at it."""
        stored = await uploads.store_avatar(avatar)
        return ApiResponse(
            message="Avatar updated successfully",
            data={"user": service.update_avatar(identity, stored["url"]), "file": stored},
        )

    @router.post(
        "/change-password",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        dependencies=limit(AUTH),
        responses=_PROTECTED_ERRORS,
    )
    def change_password(
        payload: dict[str, Any] = Depends(validated_body(CHANGE_PASSWORD)),
        identity: IdentityContext = Depends(auth.required),
    ) -> ApiResponse:
        service.change_password(identity, payload)
        return ApiResponse(message="Password changed successfully")

    @router.get(
        "/verify-email/{token}",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        dependencies=limit(EMAIL_VERIFICATION),
        responses={400: {"model": ApiErrorResponse}, 429: {"model": ApiErrorResponse}},
    )
    def verify_email(token: str, background_tasks: BackgroundTasks) -> ApiResponse:
        service.verify_email(token, send_later=background_tasks.add_task)
        return ApiResponse(message="Email verified successfully")

    @router.post(
        "/forgot-password",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        dependencies=limit(PASSWORD_RESET),
        responses={
            400: {"model": ApiErrorResponse},
            404: {"model": ApiErrorResponse},
            429: {"model": ApiErrorResponse},
            500: {"model": ApiErrorResponse},
        },
    )
    def forgot_password(
        payload: dict[str, Any] = Depends(validated_body(FORGOT_PASSWORD)),
    ) -> ApiResponse:
        service.forgot_password(payload["email"])
        return ApiResponse(message="Password reset email sent")

    @router.post(
        "/reset-password/{token}",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        dependencies=limit(PASSWORD_RESET),
        responses={400: {"model": ApiErrorResponse}, 429: {"model": ApiErrorResponse}},
    )
    def reset_password(
        token: str,
        payload: dict[str, Any] = Depends(validated_body(RESET_PASSWORD)),
    ) -> ApiResponse:
        service.reset_password(token, payload["password"])
        return ApiResponse(message="Password reset successfully")

    @router.get(
        "/dashboard-stats",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        responses=_PROTECTED_ERRORS,
    )
    def dashboard_stats(identity: IdentityContext = Depends(auth.required)) -> ApiResponse:
        return ApiResponse(data=service.dashboard_stats(identity))

    return router
