"""Course media upload API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from app.api.contracts import ApiErrorResponse, ApiResponse
from app.auth.gate import AuthDependencies
from app.auth.models import IdentityContext, Role
from app.uploads.service import UploadService


def create_uploads_router(
    service: UploadService, auth: AuthDependencies
) -> APIRouter:
    """Build the staff-only media upload router."""
    router = APIRouter(prefix="/api/uploads", tags=["uploads"])
    staff = auth.roles(Role.INSTRUCTOR, Role.ADMIN)

    @router.post(
        "",
        status_code=201,
        response_model=ApiResponse,
        response_model_exclude_none=True,
        responses={
            400: {"model": ApiErrorResponse},
            401: {"model": ApiErrorResponse},
            403: {"model": ApiErrorResponse},
            413: {"model": ApiErrorResponse},
        },
    )
    async def upload_media(
        file: UploadFile | None = File(default=None),
        identity: IdentityContext = Depends(staff),
    ) -> ApiResponse:
        """Store a lesson video or PDF and return its public URL."""
        stored = await service.store_media(file)
        return ApiResponse(message="File uploaded successfully", data=stored)

    return router
