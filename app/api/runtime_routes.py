"""Runtime route registration for health and liveness endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import FastAPI

from app.api.contracts import HealthResponse


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def register_runtime_routes(app: FastAPI) -> None:
    """Register root and health endpoints."""

    @app.get("/", response_model=HealthResponse)
    def root() -> HealthResponse:
        return HealthResponse(
            status="OK", message="Course platform API running", timestamp=_now_iso()
        )

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="OK", message="API is running", timestamp=_now_iso())
