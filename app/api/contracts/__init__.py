"""Public API response contracts."""

from app.api.contracts.models import (
    ApiErrorResponse,
    ApiModel,
    ApiResponse,
    AuthSession,
    AuthTokens,
    HealthResponse,
    Pagination,
    ValidationIssue,
    camelize_keys,
)

__all__ = [
    "ApiErrorResponse",
    "ApiModel",
    "ApiResponse",
    "AuthSession",
    "AuthTokens",
    "HealthResponse",
    "Pagination",
    "ValidationIssue",
    "camelize_keys",
]
