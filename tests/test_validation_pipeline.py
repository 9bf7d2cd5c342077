from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import pytest

from app.api.errors import ApiError
from app.validation import rules
from app.validation.pipeline import (
    MISSING,
    Field,
    RuleSet,
    is_strong_password,
    pick,
    read_json_object,
    require_object_id,
    run_pipeline,
    sanitize_payload,
)


def _issues(payload: object, rule_set: RuleSet) -> list[dict]:
    with pytest.raises(ApiError) as exc:
        run_pipeline(payload, rule_set)
    assert exc.value.status_code == 400
    assert exc.value.detail["error_code"] == "VALIDATION_ERROR"
    assert exc.value.detail["message"] == "Validation failed"
    return exc.value.detail["errors"]


def test_sanitize_trims_and_drops_empty_values() -> None:
    cleaned = sanitize_payload(
        {
            "name": "  Bob  ",
            "note": "",
            "blank": "   ",
            "address": {"city": " Oslo ", "street": ""},
            "interests": [" python ", "", "  "],
            "price": 0,
            "flag": False,
        }
    )

    assert cleaned == {
        "name": "Bob",
        "address": {"city": "Oslo"},
        "interests": ["python"],
        "price": 0,
        "flag": False,
    }


def test_pick_resolves_dotted_paths() -> None:
    payload = {"address": {"city": "Oslo"}, "name": "Bob"}

    assert pick(payload, "address.city") == "Oslo"
    assert pick(payload, "address.zip") is MISSING
    assert pick(payload, "name.first") is MISSING


def test_register_reports_every_failed_field_in_declaration_order() -> None:
    issues = _issues({"name": "", "email": "bad", "password": "short"}, rules.REGISTER)

    assert [issue["field"] for issue in issues] == ["name", "email", "password"]
    assert issues[0]["message"] == "Name is required"
    assert issues[1]["message"] == "Please provide a valid email address"
    assert issues[1]["value"] == "bad"
    assert issues[2]["message"] == "Password must be at least 8 characters long"


def test_field_chain_stops_at_first_failure() -> None:
    issues = _issues({"name": "Bob", "email": "bob@example.com", "password": "abc"}, rules.REGISTER)

    assert len(issues) == 1
    assert issues[0]["message"] == "Password must be at least 8 characters long"


def test_weak_password_reports_strength_message() -> None:
    issues = _issues(
        {"name": "Bob", "email": "bob@example.com", "password": "alllowercase"},
        rules.REGISTER,
    )

    assert issues == [
        {
            "field": "password",
            "message": rules.STRONG_PASSWORD_MESSAGE,
            "value": "alllowercase",
        }
    ]


def test_run_pipeline_returns_sanitized_payload() -> None:
    clean = run_pipeline(
        {"name": "  Bob  ", "email": " bob@example.com ", "password": "Str0ng!Pass", "note": ""},
        rules.REGISTER,
    )

    assert clean == {"name": "Bob", "email": "bob@example.com", "password": "Str0ng!Pass"}


def test_optional_fields_are_skipped_when_absent() -> None:
    assert run_pipeline({}, rules.UPDATE_PROFILE) == {}
    assert run_pipeline({"bio": ""}, rules.UPDATE_PROFILE) == {}


def test_optional_fields_are_checked_when_present() -> None:
    issues = _issues(
        {"phone": "call me", "gender": "robot", "address": {"city": "x" * 101}},
        rules.UPDATE_PROFILE,
    )

    assert [issue["field"] for issue in issues] == ["phone", "gender", "address.city"]


def test_cross_field_check_compares_against_other_field() -> None:
    issues = _issues(
        {
            "currentPassword": "Old!Pass1",
            "newPassword": "N3w!Password",
            "confirmNewPassword": "Different1!",
        },
        rules.CHANGE_PASSWORD,
    )

    assert issues == [
        {
            "field": "confirmNewPassword",
            "message": "New passwords do not match",
            "value": "Different1!",
        }
    ]


def test_course_rules_cover_numbers_and_enums() -> None:
    issues = _issues(
        {
            "title": "Py",
            "description": "Short",
            "modules": [],
            "level": "Expert",
            "price": -5,
        },
        rules.COURSE,
    )

    assert [issue["message"] for issue in issues] == [
        "Course title must be between 3 and 200 characters",
        "Course description must be between 10 and 1000 characters",
        "Course must have at least one module",
        "Level must be Beginner, Intermediate, or Advanced",
        "Price cannot be negative",
    ]


def test_number_check_rejects_booleans_and_text() -> None:
    rule_set = RuleSet(Field("price").optional().number("Price must be a number"))

    assert _issues({"price": True}, rule_set)[0]["message"] == "Price must be a number"
    assert _issues({"price": "ten"}, rule_set)[0]["message"] == "Price must be a number"
    assert run_pipeline({"price": "10.5"}, rule_set) == {"price": "10.5"}


def test_non_object_body_is_rejected() -> None:
    issues = _issues(["not", "an", "object"], rules.LOGIN)

    assert issues[0]["message"] == "Request body must be a JSON object"


def test_strong_password_predicate() -> None:
    assert is_strong_password("Str0ng!Pass") is True
    assert is_strong_password("Sh0rt!") is False
    assert is_strong_password("NoDigits!!") is False
    assert is_strong_password(12345678) is False


def test_require_object_id() -> None:
    assert require_object_id("507f1f77bcf86cd799439011") == "507f1f77bcf86cd799439011"

    with pytest.raises(ApiError) as exc:
        require_object_id("not-an-id", "courseId")

    assert exc.value.detail["errors"][0]["message"] == "Invalid courseId format"


class _Request:
    def __init__(self, raw: bytes, chunk_size: int = 4, max_bytes: int | None = None) -> None:
        self._chunks = [raw[i : i + chunk_size] for i in range(0, len(raw), chunk_size)]
        self.app = SimpleNamespace(state=SimpleNamespace(request_max_bytes=max_bytes))

    async def stream(self):
        for chunk in self._chunks:
            yield chunk


def test_read_json_object_handles_empty_and_malformed_bodies() -> None:
    assert asyncio.run(read_json_object(_Request(b""))) == {}
    assert asyncio.run(read_json_object(_Request(json.dumps({"a": 1}).encode()))) == {"a": 1}

    with pytest.raises(ApiError) as exc:
        asyncio.run(read_json_object(_Request(b"{broken")))

    assert exc.value.status_code == 400


def test_read_json_object_stops_streaming_past_the_limit() -> None:
    body = json.dumps({"email": "a" * 64}).encode()

    with pytest.raises(ApiError) as exc:
        asyncio.run(read_json_object(_Request(body, max_bytes=32)))

    assert exc.value.status_code == 413
    assert exc.value.detail["error_code"] == "REQUEST_TOO_LARGE"
    assert asyncio.run(read_json_object(_Request(body), max_bytes=len(body))) == {
        "email": "a" * 64
    }


def test_email_domain_allow_list() -> None:
    rule_set = RuleSet(
        Field("email")
        .email("Please provide a valid email address")
        .email_domain(["school.edu"], "Email domain is not allowed")
    )

    assert run_pipeline({"email": "ada@School.edu"}, rule_set) == {"email": "ada@School.edu"}
    assert _issues({"email": "ada@gmail.com"}, rule_set)[0]["message"] == (
        "Email domain is not allowed"
    )
