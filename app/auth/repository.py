"""Credential store: user records with MongoDB primary and file-store fallback."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any

from pymongo.errors import DuplicateKeyError

from app.auth.models import User
from app.core.document_store import JsonFileCollection, open_mongo_database


class UserAlreadyExistsError(Exception):
    """Raised when a write would break the unique email or Google id constraint."""


class UserRepository:
    """User repository keyed by ``user_id`` with a unique normalized email."""

    def __init__(
        self, app_root: Path, *, mongo_uri: str = "", mongo_db: str = "course_platform"
    ) -> None:
        """Initialize repository storage backends."""
        self._file = JsonFileCollection(app_root / "runtime" / "store" / "users.json")
        self._mongo_users = None

        db = open_mongo_database(mongo_uri, mongo_db)
        if db is not None:
            self._mongo_users = db["users"]
            self._mongo_users.create_index("user_id", unique=True)
            self._mongo_users.create_index("email", unique=True)

    @staticmethod
    def _normalize_email(email: str) -> str:
        return (email or "").strip().lower()

    def _find_one(self, field: str, value: Any) -> User | None:
        if self._mongo_users is not None:
            doc = self._mongo_users.find_one({field: value}, {"_id": 0})
            return User.model_validate(doc) if doc else None

        for row in self._file.read():
            if row.get(field) == value:
                return User.model_validate(row)
        return None

    def get_by_email(self, email: str) -> User | None:
        """Get user by normalized email."""
        key = self._normalize_email(email)
        if not key:
            return None
        return self._find_one("email", key)

    def get_by_id(self, user_id: str) -> User | None:
        """Get user by id."""
        if not user_id:
            return None
        return self._find_one("user_id", user_id)

    def get_by_google_id(self, google_id: str) -> User | None:
        """Get user linked to a federated Google account."""
        if not google_id:
            return None
        return self._find_one("google_id", google_id)

    def create(self, user: User) -> User:
        """Insert a new user, enforcing email uniqueness at the store."""
        doc = user.model_dump(mode="json")
        if self._mongo_users is not None:
            try:
                self._mongo_users.insert_one(dict(doc))
            except DuplicateKeyError as exc:
                raise UserAlreadyExistsError(user.email) from exc
            return user

        with self._file.lock:
            items = self._file.read()
            if any(row.get("email") == user.email for row in items):
                raise UserAlreadyExistsError(user.email)
            items.append(doc)
            self._file.write(items)
        return user

    def upsert(self, user: User) -> User:
        """Persist the full user document (last write wins)."""
        user.updated_at = int(time.time())
        doc = user.model_dump(mode="json")
        if self._mongo_users is not None:
            try:
                self._mongo_users.replace_one({"user_id": user.user_id}, doc, upsert=True)
            except DuplicateKeyError as exc:
                raise UserAlreadyExistsError(user.email) from exc
            return user

        with self._file.lock:
            items = self._file.read()
            if any(
                row.get("user_id") != user.user_id
                and (
                    row.get("email") == user.email
                    or (user.google_id is not None and row.get("google_id") == user.google_id)
                )
                for row in items
            ):
                raise UserAlreadyExistsError(user.email)
            next_items = [row for row in items if row.get("user_id") != user.user_id]
            next_items.append(doc)
            self._file.write(next_items)
        return user
