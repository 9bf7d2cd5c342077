"""HTTP middleware and exception handler wiring for FastAPI apps."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.contracts import ApiErrorResponse
from app.api.errors import ApiErrorCode, to_error_payload
from app.core.config import AppConfig
from app.core.logging import set_correlation_id

_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}


def register_http_middleware(app: FastAPI, *, config: AppConfig, logger: Any) -> None:
    """Attach common security and observability middleware to an app."""
    # JSON body readers enforce the same limit on bodies without Content-Length.
    app.state.request_max_bytes = config.security.request_max_bytes

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                parsed_length = int(content_length)
            except ValueError:
                parsed_length = 0
            limit = config.security.request_max_bytes
            if request.url.path.startswith("/api/uploads") or request.url.path.endswith(
                "/avatar"
            ):
                limit = max(limit, config.uploads.media_max_bytes)
            if parsed_length > limit:
                return JSONResponse(
                    status_code=413,
                    content=ApiErrorResponse(
                        error_code=ApiErrorCode.REQUEST_TOO_LARGE,
                        message=f"Payload too large (limit {limit} bytes).",
                    ).model_dump(by_alias=True, exclude_none=True),
                )
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        correlation_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-correlation-id")
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        logger.info(
            "request_completed",
            extra={
                "user_id": getattr(request.state, "user_id", None),
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
            },
        )
        return response


def validation_issues_from_exception(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Convert FastAPI request validation errors into field issues."""
    issues: list[dict[str, Any]] = []
    for item in exc.errors():
        loc = [str(part) for part in item.get("loc", ())]
        if loc and loc[0] in _LOCATION_PREFIXES:
            loc = loc[1:]
        issues.append(
            {
                "field": ".".join(loc),
                "message": str(item.get("msg") or "Invalid value"),
                "value": jsonable_encoder(item.get("input")),
            }
        )
    return issues


def register_exception_handlers(
    app: FastAPI, *, logger: Any, expose_error_details: bool = False
) -> None:
    """Attach API exception handlers that return stable error contracts."""

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        detail: Any = exc.detail
        if exc.status_code == 404 and detail == "Not Found":
            detail = {
                "error_code": ApiErrorCode.NOT_FOUND,
                "message": f"Route {request.url.path} not found",
            }
        payload = to_error_payload(detail, exc.status_code)
        logger.warning(
            "http_exception",
            extra={
                "user_id": getattr(request.state, "user_id", None),
                "path": request.url.path,
                "method": request.method,
                "status_code": exc.status_code,
                "error_code": payload["errorCode"],
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=payload,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.warning(
            "validation_exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": 400,
            },
        )
        return JSONResponse(
            status_code=400,
            content=ApiErrorResponse(
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message="Validation failed",
                errors=validation_issues_from_exception(exc),
            ).model_dump(by_alias=True, exclude_none=True),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.exception(
            "unexpected_exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": 500,
            },
        )
        return JSONResponse(
            status_code=500,
            content=ApiErrorResponse(
                error_code=ApiErrorCode.INTERNAL_SERVER_ERROR,
                message="Internal server error",
                error=(str(exc) or exc.__class__.__name__) if expose_error_details else None,
            ).model_dump(by_alias=True, exclude_none=True),
        )
