"""Pydantic models for the course catalog."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.auth.models import new_object_id

CourseLevel = Literal["Beginner", "Intermediate", "Advanced"]

SORTABLE_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "title": "title",
    "price": "price",
    "rating": "rating",
    "enrollmentCount": "enrollment_count",
    "level": "level",
    "category": "category",
}


class CatalogModel(BaseModel):
    """Snake_case in storage, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Lesson(CatalogModel):
    id: int
    title: str = Field(min_length=1)
    video_url: str = ""
    notes: str = ""
    pdf_url: str = ""
    completed: bool = False
    duration: int = Field(default=0, ge=0)
    order: int = 0


class CourseModule(CatalogModel):
    id: int
    title: str = Field(min_length=1)
    description: str = ""
    order: int = 0
    lessons: list[Lesson] = Field(default_factory=list)


class Course(CatalogModel):
    """Course document with modules and lessons embedded."""

    course_id: str = Field(default_factory=new_object_id)
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=10, max_length=1000)
    modules: list[CourseModule] = Field(default_factory=list)
    instructor: str = "Admin"
    category: str = "General"
    level: CourseLevel = "Beginner"
    price: float = Field(default=0, ge=0)
    is_published: bool = False
    enrollment_count: int = Field(default=0, ge=0)
    rating: float = Field(default=0, ge=0, le=5)
    thumbnail: str = ""
    tags: list[str] = Field(default_factory=list)
    created_at: int = Field(default_factory=lambda: int(time.time()))
    updated_at: int = Field(default_factory=lambda: int(time.time()))

    @property
    def total_lessons(self) -> int:
        return sum(len(module.lessons) for module in self.modules)

    @property
    def total_duration(self) -> int:
        return sum(lesson.duration for module in self.modules for lesson in module.lessons)


def course_view(course: Course) -> dict[str, Any]:
    """Client-facing course dict including derived totals."""
    doc = course.model_dump(mode="json", by_alias=True)
    doc["id"] = doc.pop("courseId")
    doc["totalLessons"] = course.total_lessons
    doc["totalDuration"] = course.total_duration
    return doc


@dataclass(frozen=True)
class CourseQuery:
    """Listing filters, sort and page window."""

    page: int = 1
    limit: int = 10
    category: str = ""
    level: str = ""
    is_published: bool | None = None
    search: str = ""
    sort_by: str = "createdAt"
    sort_order: str = "desc"

    @property
    def sort_field(self) -> str:
        return SORTABLE_FIELDS.get(self.sort_by, "created_at")

    @property
    def descending(self) -> bool:
        return self.sort_order.lower() != "asc"

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit
