"""Declared rule sets for each validated route payload."""

from __future__ import annotations

from app.validation.pipeline import Field, RuleSet

COURSE_LEVELS = ("Beginner", "Intermediate", "Advanced")
GENDERS = ("male", "female", "other", "prefer-not-to-say")

STRONG_PASSWORD_MESSAGE = (
    "Password must contain at least one uppercase letter, one lowercase letter, "
    "one number, and one special character"
)


def _name(*, optional: bool = False) -> Field:
    field = Field("name")
    if optional:
        field.optional()
    else:
        field.required("Name is required")
    return field.length("Name must be between 2 and 100 characters", min=2, max=100)


def _email() -> Field:
    return Field("email").email("Please provide a valid email address")


def _new_password(path: str = "password", label: str = "Password") -> Field:
    return (
        Field(path)
        .length(f"{label} must be at least 8 characters long", min=8)
        .strong_password(STRONG_PASSWORD_MESSAGE.replace("Password", label, 1))
    )


REGISTER = RuleSet(
    _name(),
    _email(),
    _new_password(),
)

LOGIN = RuleSet(
    _email(),
    Field("password").required("Password is required"),
)

GOOGLE_AUTH = RuleSet(
    Field("googleId").required("Google ID is required"),
    _email(),
    _name(),
    Field("avatar").optional().url("Avatar must be a valid URL"),
)

UPDATE_PROFILE = RuleSet(
    _name(optional=True),
    Field("phone").optional().phone("Please provide a valid phone number"),
    Field("bio").optional().length("Bio must not exceed 500 characters", max=500),
    Field("dateOfBirth").optional().iso_date("Please provide a valid date of birth"),
    Field("gender").optional().one_of(GENDERS, "Gender is not a supported value"),
    Field("interests").optional().array("Interests must be a list"),
    Field("address.city")
    .optional()
    .length("Location must not exceed 100 characters", max=100),
)

CHANGE_PASSWORD = RuleSet(
    Field("currentPassword").required("Current password is required"),
    _new_password("newPassword", "New password"),
    Field("confirmNewPassword").equals_field("newPassword", "New passwords do not match"),
)

FORGOT_PASSWORD = RuleSet(
    _email(),
)

RESET_PASSWORD = RuleSet(
    _new_password(),
)

COURSE = RuleSet(
    Field("title")
    .required("Course title is required")
    .length("Course title must be between 3 and 200 characters", min=3, max=200),
    Field("description")
    .required("Course description is required")
    .length("Course description must be between 10 and 1000 characters", min=10, max=1000),
    Field("thumbnail").optional().url("Thumbnail URL must be a valid URL"),
    Field("modules").array("Course must have at least one module", min_length=1),
    Field("level")
    .optional()
    .one_of(COURSE_LEVELS, "Level must be Beginner, Intermediate, or Advanced"),
    Field("price")
    .optional()
    .number("Price must be a number")
    .non_negative("Price cannot be negative"),
)
