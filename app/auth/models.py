"""Pydantic models for authentication domain."""

from __future__ import annotations

import time
from enum import StrEnum
from typing import Any

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.api.contracts import camelize_keys


def new_object_id() -> str:
    """Return a fresh 24-hex document id."""
    return str(ObjectId())


class Role(StrEnum):
    """Closed set of account roles."""

    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


class RefreshTokenRecord(BaseModel):
    """Active refresh token owned by a single user."""

    token: str
    issued_at: int = Field(default_factory=lambda: int(time.time()))


class RegisteredCourse(BaseModel):
    course_id: str
    registered_at: int = Field(default_factory=lambda: int(time.time()))
    progress: int = Field(default=0, ge=0, le=100)
    last_accessed_at: int = Field(default_factory=lambda: int(time.time()))


class CompletedCourse(BaseModel):
    course_id: str
    completed_at: int = Field(default_factory=lambda: int(time.time()))
    completion_percentage: int = Field(default=100, ge=0, le=100)
    time_spent_minutes: int = 0


class PurchasedCourse(BaseModel):
    course_id: str
    purchased_at: int = Field(default_factory=lambda: int(time.time()))
    amount: float
    payment_method: str = "card"
    transaction_id: str


class Certificate(BaseModel):
    course_id: str
    course_title: str
    certificate_id: str
    issued_at: int = Field(default_factory=lambda: int(time.time()))
    certificate_url: str = ""


class User(BaseModel):
    """Persisted identity and credential record."""

    user_id: str = Field(default_factory=new_object_id)
    name: str
    email: str
    password_hash: str | None = None
    google_id: str | None = None
    avatar: str = ""
    role: Role = Role.STUDENT
    is_active: bool = True
    is_email_verified: bool = False
    email_verification_token: str | None = None
    email_verification_expires_at: int | None = None
    password_reset_token: str | None = None
    password_reset_expires_at: int | None = None
    refresh_tokens: list[RefreshTokenRecord] = Field(default_factory=list)

    phone: str = ""
    bio: str = ""
    date_of_birth: str | None = None
    gender: str = ""
    interests: list[str] = Field(default_factory=list)
    education: dict[str, Any] = Field(default_factory=dict)
    address: dict[str, Any] = Field(default_factory=dict)

    registered_courses: list[RegisteredCourse] = Field(default_factory=list)
    completed_courses: list[CompletedCourse] = Field(default_factory=list)
    purchased_courses: list[PurchasedCourse] = Field(default_factory=list)
    certificates: list[Certificate] = Field(default_factory=list)

    last_login_at: int | None = None
    created_at: int = Field(default_factory=lambda: int(time.time()))
    updated_at: int = Field(default_factory=lambda: int(time.time()))

    @model_validator(mode="after")
    def _require_credential(self) -> "User":
        self.email = self.email.strip().lower()
        if not self.password_hash and not self.google_id:
            raise ValueError("User needs a password hash or a linked google_id")
        return self


class IdentityContext(BaseModel):
    """Sanitized, immutable identity attached to an authenticated request."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    name: str
    email: str
    role: Role
    is_active: bool
    is_email_verified: bool

    @classmethod
    def from_user(cls, user: User) -> "IdentityContext":
        return cls(
            user_id=user.user_id,
            name=user.name,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            is_email_verified=user.is_email_verified,
        )


_PRIVATE_USER_FIELDS = {
    "password_hash",
    "email_verification_token",
    "email_verification_expires_at",
    "password_reset_token",
    "password_reset_expires_at",
    "refresh_tokens",
}


def public_user_view(user: User, *, full: bool = False) -> dict[str, Any]:
    """Return the client-facing user dict, never including secrets."""
    if not full:
        return {
            "id": user.user_id,
            "name": user.name,
            "email": user.email,
            "role": str(user.role),
            "isEmailVerified": user.is_email_verified,
            "avatar": user.avatar,
        }
    doc = camelize_keys(user.model_dump(mode="json", exclude=_PRIVATE_USER_FIELDS))
    doc["id"] = doc.pop("userId")
    doc["hasPassword"] = bool(user.password_hash)
    doc["totalPurchasedCourses"] = len(user.purchased_courses)
    doc["totalCompletedCourses"] = len(user.completed_courses)
    doc["totalCertificates"] = len(user.certificates)
    return doc
