"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def camelize_keys(value: Any) -> Any:
    """Recursively convert dict keys of a dumped model to camelCase."""
    if isinstance(value, dict):
        return {to_camel(str(key)): camelize_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [camelize_keys(item) for item in value]
    return value


class ValidationIssue(ApiModel):
    """Single rejected field in a request payload."""

    field: str
    message: str
    value: Any = None


class ApiErrorResponse(ApiModel):
    """Stable error envelope for API responses."""

    success: Literal[False] = False
    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")
    errors: list[ValidationIssue] | None = None
    retry_after: int | None = None
    error: str | None = Field(
        default=None, description="Internal detail, only when explicitly enabled"
    )


class Pagination(ApiModel):
    """Page metadata for listing endpoints."""

    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class ApiResponse(ApiModel):
    """Success envelope shared by every JSON endpoint."""

    success: bool = True
    message: str | None = None
    data: Any = None
    pagination: Pagination | None = None


class HealthResponse(ApiModel):
    """Health check response payload."""

    status: Literal["OK"]
    message: str
    timestamp: str


class AuthTokens(ApiModel):
    """Access/refresh token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthSession(AuthTokens):
    """Token pair plus the public view of the signed-in user."""

    user: dict[str, Any]
