"""Course catalog API router."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from app.api.contracts import ApiErrorResponse, ApiResponse
from app.auth.gate import AuthDependencies
from app.auth.models import IdentityContext, Role
from app.courses.models import CourseQuery
from app.courses.service import CourseService
from app.validation.pipeline import require_object_id, validated_body
from app.validation.rules import COURSE

_ERRORS = {
    400: {"model": ApiErrorResponse},
    401: {"model": ApiErrorResponse},
    403: {"model": ApiErrorResponse},
    404: {"model": ApiErrorResponse},
}


def _parse_flag(value: str | None) -> bool | None:
    if value is None or value == "":
        return None
    return value.strip().lower() == "true"


def create_courses_router(service: CourseService, auth: AuthDependencies) -> APIRouter:
    """Build course router; writes need a verified instructor or admin."""
    router = APIRouter(prefix="/api/courses", tags=["courses"])
    editor = auth.verified_roles(Role.INSTRUCTOR, Role.ADMIN)

    @router.get("/stats", response_model=ApiResponse, response_model_exclude_none=True)
    def course_stats() -> ApiResponse:
        """Catalog overview with category and level breakdowns."""
        return ApiResponse(data=service.stats())

    @router.get(
        "",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        responses={400: {"model": ApiErrorResponse}},
    )
    def list_courses(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
        category: str = "",
        level: str = "",
        is_published: str | None = Query(default=None, alias="isPublished"),
        search: str = "",
        sort_by: str = Query(default="createdAt", alias="sortBy"),
        sort_order: str = Query(default="desc", alias="sortOrder"),
        identity: IdentityContext | None = Depends(auth.optional),
    ) -> ApiResponse:
        """Paginated course listing with filters and free-text search."""
        query = CourseQuery(
            page=page,
            limit=limit,
            category=category.strip(),
            level=level.strip(),
            is_published=_parse_flag(is_published),
            search=search.strip(),
            sort_by=sort_by,
            sort_order=sort_order,
        )
        items, pagination = service.list_courses(query, identity)
        return ApiResponse(data=items, pagination=pagination)

    @router.post(
        "",
        status_code=201,
        response_model=ApiResponse,
        response_model_exclude_none=True,
        responses=_ERRORS,
    )
    def create_course(
        payload: dict[str, Any] = Depends(validated_body(COURSE)),
        identity: IdentityContext = Depends(editor),
    ) -> ApiResponse:
        return ApiResponse(
            message="Course created successfully",
            data=service.create_course(payload, identity),
        )

    @router.get(
        "/{course_id}",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        responses=_ERRORS,
    )
    def get_course(
        course_id: str,
        identity: IdentityContext | None = Depends(auth.optional),
    ) -> ApiResponse:
        require_object_id(course_id)
        return ApiResponse(data=service.get_course(course_id, identity))

    @router.put(
        "/{course_id}",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        responses=_ERRORS,
    )
    def update_course(
        course_id: str,
        payload: dict[str, Any] = Depends(validated_body(COURSE)),
        identity: IdentityContext = Depends(editor),
    ) -> ApiResponse:
        require_object_id(course_id)
        return ApiResponse(
            message="Course updated successfully",
            data=service.update_course(course_id, payload),
        )

    @router.patch(
        "/{course_id}/toggle-publish",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        responses=_ERRORS,
    )
    def toggle_publish(
        course_id: str, identity: IdentityContext = Depends(editor)
    ) -> ApiResponse:
        require_object_id(course_id)
        course = service.toggle_publish(course_id)
        state = "published" if course["isPublished"] else "unpublished"
        return ApiResponse(message=f"Course {state} successfully", data=course)

    @router.delete(
        "/{course_id}",
        response_model=ApiResponse,
        response_model_exclude_none=True,
        responses=_ERRORS,
    )
    def delete_course(
        course_id: str, identity: IdentityContext = Depends(editor)
    ) -> ApiResponse:
        require_object_id(course_id)
        service.delete_course(course_id)
        return ApiResponse(message="Course deleted successfully")

    return router
