"""Course store with MongoDB primary and file-store fallback."""

from __future__ import annotations

import time
from collections import Counter
from pathlib import Path
from typing import Any, Iterable

import pymongo
from pymongo.errors import DuplicateKeyError

from app.core.document_store import JsonFileCollection, open_mongo_database
from app.courses.models import Course, CourseQuery


class CourseTitleTakenError(Exception):
    """Raised when a write would duplicate an existing course title."""


def _empty_overview() -> dict[str, Any]:
    return {
        "totalCourses": 0,
        "publishedCourses": 0,
        "unpublishedCourses": 0,
        "totalEnrollments": 0,
        "averageRating": 0,
    }


def _search_terms(search: str) -> list[str]:
    return [term.lower() for term in search.split() if term.strip()]


class CourseRepository:
    """Course repository keyed by ``course_id`` with unique titles."""

    def __init__(
        self, app_root: Path, *, mongo_uri: str = "", mongo_db: str = "course_platform"
    ) -> None:
        """Initialize repository storage backends."""
        self._file = JsonFileCollection(app_root / "runtime" / "store" / "courses.json")
        self._mongo_courses = None

        db = open_mongo_database(mongo_uri, mongo_db)
        if db is not None:
            self._mongo_courses = db["courses"]
            self._mongo_courses.create_index("course_id", unique=True)
            self._mongo_courses.create_index("title", unique=True)
            self._mongo_courses.create_index(
                [("title", pymongo.TEXT), ("description", pymongo.TEXT)],
                name="idx_courses_text",
            )

    # Reads

    def get(self, course_id: str) -> Course | None:
        """Get course by id."""
        if self._mongo_courses is not None:
            doc = self._mongo_courses.find_one({"course_id": course_id}, {"_id": 0})
            return Course.model_validate(doc) if doc else None

        for row in self._file.read():
            if row.get("course_id") == course_id:
                return Course.model_validate(row)
        return None

    def list_by_ids(self, course_ids: Iterable[str]) -> list[Course]:
        """Return the courses among ``course_ids`` that exist."""
        wanted = set(course_ids)
        if not wanted:
            return []
        if self._mongo_courses is not None:
            cursor = self._mongo_courses.find({"course_id": {"$in": sorted(wanted)}}, {"_id": 0})
            return [Course.model_validate(doc) for doc in cursor]
        rows = self._file.read()
        return [Course.model_validate(row) for row in rows if row.get("course_id") in wanted]

    def list(self, query: CourseQuery) -> tuple[list[Course], int]:
        """Return one page of courses matching ``query`` and the total match count."""
        if self._mongo_courses is not None:
            mongo_filter: dict[str, Any] = {}
            if query.category:
                mongo_filter["category"] = query.category
            if query.level:
                mongo_filter["level"] = query.level
            if query.is_published is not None:
                mongo_filter["is_published"] = query.is_published
            if query.search:
                mongo_filter["$text"] = {"$search": query.search}
            direction = pymongo.DESCENDING if query.descending else pymongo.ASCENDING
            cursor = (
                self._mongo_courses.find(mongo_filter, {"_id": 0})
                .sort(query.sort_field, direction)
                .skip(query.skip)
                .limit(query.limit)
            )
            items = [Course.model_validate(doc) for doc in cursor]
            return items, self._mongo_courses.count_documents(mongo_filter)

        terms = _search_terms(query.search)
        rows = []
        for row in self._file.read():
            if query.category and row.get("category") != query.category:
                continue
            if query.level and row.get("level") != query.level:
                continue
            published = bool(row.get("is_published"))
            if query.is_published is not None and published != query.is_published:
                continue
            if terms:
                haystack = f"{row.get('title', '')} {row.get('description', '')}".lower()
                if not any(term in haystack for term in terms):
                    continue
            rows.append(row)

        field = query.sort_field
        rows.sort(
            key=lambda row: (row.get(field) is None, row.get(field)),
            reverse=query.descending,
        )
        page = rows[query.skip : query.skip + query.limit]
        return [Course.model_validate(row) for row in page], len(rows)

    def stats(self) -> dict[str, Any]:
        """Catalog overview plus category and level breakdowns."""
        if self._mongo_courses is not None:
            overview = list(
                self._mongo_courses.aggregate(
                    [
                        {
                            "$group": {
                                "_id": None,
                                "totalCourses": {"$sum": 1},
                                "publishedCourses": {"$sum": {"$cond": ["$is_published", 1, 0]}},
                                "totalEnrollments": {"$sum": "$enrollment_count"},
                                "averageRating": {"$avg": "$rating"},
                            }
                        },
                        {
                            "$project": {
                                "_id": 0,
                                "totalCourses": 1,
                                "publishedCourses": 1,
                                "unpublishedCourses": {
                                    "$subtract": ["$totalCourses", "$publishedCourses"]
                                },
                                "totalEnrollments": 1,
                                "averageRating": {"$round": ["$averageRating", 2]},
                            }
                        },
                    ]
                )
            )
            breakdowns = {}
            for field in ("category", "level"):
                breakdowns[field] = [
                    {"_id": row["_id"], "count": row["count"]}
                    for row in self._mongo_courses.aggregate(
                        [
                            {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
                            {"$sort": {"count": -1}},
                        ]
                    )
                ]
            return {
                "overview": overview[0] if overview else _empty_overview(),
                "categoryStats": breakdowns["category"],
                "levelStats": breakdowns["level"],
            }

        rows = self._file.read()
        if not rows:
            return {"overview": _empty_overview(), "categoryStats": [], "levelStats": []}
        published = sum(1 for row in rows if row.get("is_published"))
        ratings = [float(row.get("rating") or 0) for row in rows]
        return {
            "overview": {
                "totalCourses": len(rows),
                "publishedCourses": published,
                "unpublishedCourses": len(rows) - published,
                "totalEnrollments": sum(int(row.get("enrollment_count") or 0) for row in rows),
                "averageRating": round(sum(ratings) / len(ratings), 2),
            },
            "categoryStats": [
                {"_id": key, "count": count}
                for key, count in Counter(row.get("category") for row in rows).most_common()
            ],
            "levelStats": [
                {"_id": key, "count": count}
                for key, count in Counter(row.get("level") for row in rows).most_common()
            ],
        }

    # Writes

    def create(self, course: Course) -> Course:
        """Insert a course, enforcing title uniqueness at the store."""
        doc = course.model_dump(mode="json")
        if self._mongo_courses is not None:
            try:
                self._mongo_courses.insert_one(dict(doc))
            except DuplicateKeyError as exc:
                raise CourseTitleTakenError(course.title) from exc
            return course

        with self._file.lock:
            items = self._file.read()
            if any(row.get("title") == course.title for row in items):
                raise CourseTitleTakenError(course.title)
            items.append(doc)
            self._file.write(items)
        return course

    def replace(self, course: Course) -> Course:
        """Persist the full course document (last write wins)."""
        course.updated_at = int(time.time())
        doc = course.model_dump(mode="json")
        if self._mongo_courses is not None:
            try:
                self._mongo_courses.replace_one({"course_id": course.course_id}, doc, upsert=True)
            except DuplicateKeyError as exc:
                raise CourseTitleTakenError(course.title) from exc
            return course

        with self._file.lock:
            items = self._file.read()
            if any(
                row.get("title") == course.title and row.get("course_id") != course.course_id
                for row in items
            ):
                raise CourseTitleTakenError(course.title)
            next_items = [row for row in items if row.get("course_id") != course.course_id]
            next_items.append(doc)
            self._file.write(next_items)
        return course

    def delete(self, course_id: str) -> bool:
        """Delete a course; return whether it existed."""
        if self._mongo_courses is not None:
            return self._mongo_courses.delete_one({"course_id": course_id}).deleted_count > 0

        with self._file.lock:
            items = self._file.read()
            next_items = [row for row in items if row.get("course_id") != course_id]
            if len(next_items) == len(items):
                return False
            self._file.write(next_items)
        return True
