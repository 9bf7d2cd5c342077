"""Course catalog service: visibility rules, validation and publish workflow."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from pydantic import ValidationError

from app.api.contracts import Pagination
from app.api.errors import ApiError, ApiErrorCode
from app.auth.models import IdentityContext, Role
from app.courses.models import Course, CourseQuery, course_view
from app.courses.repository import CourseRepository, CourseTitleTakenError

LOGGER = logging.getLogger(__name__)

STAFF_ROLES = {Role.INSTRUCTOR, Role.ADMIN}


def _is_staff(identity: IdentityContext | None) -> bool:
    return identity is not None and identity.role in STAFF_ROLES


def _course_not_found() -> ApiError:
    return ApiError(
        status_code=404, error_code=ApiErrorCode.COURSE_NOT_FOUND, message="Course not found"
    )


def _title_taken() -> ApiError:
    return ApiError(
        status_code=400,
        error_code=ApiErrorCode.CONFLICT,
        message="Course with this title already exists",
    )


def _model_errors(exc: ValidationError) -> ApiError:
    return ApiError(
        status_code=400,
        error_code=ApiErrorCode.VALIDATION_ERROR,
        message="Validation failed",
        errors=[
            {
                "field": ".".join(str(part) for part in err["loc"]),
                "message": err["msg"],
                "value": None if isinstance(err.get("input"), (dict, list)) else err.get("input"),
            }
            for err in exc.errors()
        ],
    )


class CourseService:
    """Course use cases; unpublished courses are visible to staff only."""

    def __init__(self, repo: CourseRepository) -> None:
        self._repo = repo

    def list_courses(
        self, query: CourseQuery, identity: IdentityContext | None
    ) -> tuple[list[dict[str, Any]], Pagination]:
        if not _is_staff(identity):
            query = replace(query, is_published=True)
        items, total = self._repo.list(query)
        pagination = Pagination(
            current_page=query.page,
            total_pages=-(-total // query.limit),
            total_items=total,
            items_per_page=query.limit,
        )
        return [course_view(course) for course in items], pagination

    def _load(self, course_id: str) -> Course:
        course = self._repo.get(course_id)
        if course is None:
            raise _course_not_found()
        return course

    def get_course(self, course_id: str, identity: IdentityContext | None) -> dict[str, Any]:
        course = self._load(course_id)
        if not course.is_published and not _is_staff(identity):
            raise _course_not_found()
        return course_view(course)

    def create_course(self, payload: dict[str, Any], identity: IdentityContext) -> dict[str, Any]:
        data = dict(payload)
        data.pop("id", None)
        data.pop("courseId", None)
        data.setdefault("instructor", identity.name or "Admin")
        try:
            course = Course.model_validate(data)
        except ValidationError as exc:
            raise _model_errors(exc) from exc
        try:
            self._repo.create(course)
        except CourseTitleTakenError as exc:
            raise _title_taken() from exc
        LOGGER.info(
            "course_created", extra={"course_id": course.course_id, "user_id": identity.user_id}
        )
        return course_view(course)

    def update_course(self, course_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Replace editable fields; identity and creation time are preserved."""
        existing = self._load(course_id)
        merged = {
            **existing.model_dump(mode="json", by_alias=True),
            **payload,
            "courseId": existing.course_id,
            "createdAt": existing.created_at,
        }
        merged.pop("id", None)
        try:
            course = Course.model_validate(merged)
        except ValidationError as exc:
            raise _model_errors(exc) from exc
        try:
            self._repo.replace(course)
        except CourseTitleTakenError as exc:
            raise _title_taken() from exc
        LOGGER.info("course_updated", extra={"course_id": course.course_id})
        return course_view(course)

    def toggle_publish(self, course_id: str) -> dict[str, Any]:
        course = self._load(course_id)
        course.is_published = not course.is_published
        self._repo.replace(course)
        LOGGER.info(
            "course_publish_toggled: %s", course.is_published, extra={"course_id": course_id}
        )
        return course_view(course)

    def delete_course(self, course_id: str) -> None:
        if not self._repo.delete(course_id):
            raise _course_not_found()
        LOGGER.info("course_deleted", extra={"course_id": course_id})

    def stats(self) -> dict[str, Any]:
        return self._repo.stats()
