"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFLICT = "CONFLICT"
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_ACCOUNT_DEACTIVATED = "AUTH_ACCOUNT_DEACTIVATED"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_FORBIDDEN = "AUTH_FORBIDDEN"
    AUTH_VERIFICATION_REQUIRED = "AUTH_VERIFICATION_REQUIRED"
    AUTH_ACCOUNT_LINK_REQUIRED = "AUTH_ACCOUNT_LINK_REQUIRED"
    RATE_LIMITED = "RATE_LIMITED"
    NOT_FOUND = "NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    COURSE_NOT_FOUND = "COURSE_NOT_FOUND"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    EMAIL_DELIVERY_FAILED = "EMAIL_DELIVERY_FAILED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    def __init__(
        self,
        *,
        status_code: int,
        error_code: ApiErrorCode,
        message: str,
        errors: list[dict[str, Any]] | None = None,
        headers: dict[str, str] | None = None,
        retry_after: int | None = None,
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        detail: dict[str, Any] = {"error_code": str(error_code), "message": message}
        if errors:
            detail["errors"] = errors
        if retry_after is not None:
            detail["retry_after"] = retry_after
        super().__init__(status_code=status_code, detail=detail, headers=headers)


def to_error_payload(detail: Any, status_code: int) -> dict[str, Any]:
    """Normalize HTTP exception detail into the ``success: false`` envelope."""
    if isinstance(detail, dict):
        payload: dict[str, Any] = {
            "success": False,
            "errorCode": str(detail.get("error_code") or f"HTTP_{status_code}"),
            "message": str(detail.get("message") or detail.get("detail") or "HTTP error"),
        }
        if detail.get("errors"):
            payload["errors"] = list(detail["errors"])
        if detail.get("retry_after") is not None:
            payload["retryAfter"] = int(detail["retry_after"])
        return payload
    return {
        "success": False,
        "errorCode": f"HTTP_{status_code}",
        "message": str(detail or "HTTP error"),
    }
