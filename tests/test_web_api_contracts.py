from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.api.app_factory import create_app
from app.auth.repository import UserRepository
from tests.factories import TEST_PASSWORD, app_config, auth_config

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "Adm1n!Pass"


@pytest.fixture()
def client(tmp_path: Path) -> TestClient:
    config = app_config(
        auth=auth_config(admin_email=ADMIN_EMAIL, admin_password=ADMIN_PASSWORD)
    )
    return TestClient(create_app(config, app_root=tmp_path))


def _register(client: TestClient, email: str = "bob@example.com") -> dict[str, Any]:
    response = client.post(
        "/api/auth/register",
        json={"name": "Bob", "email": email, "password": TEST_PASSWORD},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _login(client: TestClient, email: str, password: str) -> dict[str, Any]:
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def _bearer(session: dict[str, Any]) -> dict[str, str]:
    return {"Authorization": f"Bearer {session['accessToken']}"}


def _course_payload(title: str = "Python Basics") -> dict[str, Any]:
    return {
        "title": title,
        "description": "Learn Python from scratch.",
        "level": "Beginner",
        "price": 0,
        "modules": [{"id": 1, "title": "Intro", "lessons": [{"id": 1, "title": "Setup"}]}],
    }


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "OK"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_register_returns_session_and_rejects_duplicate(client: TestClient) -> None:
    session = _register(client)
    duplicate = client.post(
        "/api/auth/register",
        json={"name": "Bob", "email": "BOB@example.com", "password": TEST_PASSWORD},
    )

    assert session["accessToken"] and session["refreshToken"]
    assert session["user"]["email"] == "bob@example.com"
    assert session["user"]["isEmailVerified"] is False
    assert duplicate.status_code == 400
    assert duplicate.json() == {
        "success": False,
        "errorCode": "CONFLICT",
        "message": "User already exists with this email",
    }


def test_register_reports_all_invalid_fields(client: TestClient) -> None:
    response = client.post(
        "/api/auth/register", json={"name": "", "email": "bad", "password": "short"}
    )

    body = response.json()
    assert response.status_code == 400
    assert body["success"] is False
    assert body["errorCode"] == "VALIDATION_ERROR"
    assert body["message"] == "Validation failed"
    assert [issue["field"] for issue in body["errors"]] == ["name", "email", "password"]


def test_malformed_json_body_is_a_validation_error(client: TestClient) -> None:
    response = client.post(
        "/api/auth/login",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["errorCode"] == "VALIDATION_ERROR"


def test_chunked_body_over_limit_is_rejected(tmp_path: Path) -> None:
    client = TestClient(create_app(app_config(request_max_bytes=1024), app_root=tmp_path))

    def chunks():
        yield b'{"email": "bob@example.com", "password": "'
        for _ in range(8):
            yield b"a" * 512
        yield b'"}'

    response = client.post(
        "/api/auth/login",
        content=chunks(),
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 413
    assert response.json()["errorCode"] == "REQUEST_TOO_LARGE"


def test_login_failures_are_uniform(client: TestClient) -> None:
    _register(client)

    wrong = client.post(
        "/api/auth/login", json={"email": "bob@example.com", "password": "Wrong!Pass1"}
    )
    unknown = client.post(
        "/api/auth/login", json={"email": "ghost@example.com", "password": "Wrong!Pass1"}
    )

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()
    assert wrong.json()["message"] == "Invalid email or password"


def test_refresh_rotation_over_http(client: TestClient) -> None:
    _register(client)
    session = _login(client, "bob@example.com", TEST_PASSWORD)

    first = client.post("/api/auth/refresh-token", json={"refreshToken": session["refreshToken"]})
    reuse = client.post("/api/auth/refresh-token", json={"refreshToken": session["refreshToken"]})
    missing = client.post("/api/auth/refresh-token", json={})

    assert first.status_code == 200
    rotated = first.json()["data"]
    assert rotated["refreshToken"] != session["refreshToken"]
    assert reuse.status_code == missing.status_code == 401
    assert reuse.json() == missing.json()
    assert reuse.json()["errorCode"] == "AUTH_TOKEN_INVALID"
    second = client.post("/api/auth/refresh-token", json={"refreshToken": rotated["refreshToken"]})
    assert second.status_code == 200


def test_logout_revokes_refresh_token(client: TestClient) -> None:
    session = _register(client)

    logout = client.post(
        "/api/auth/logout", json={"refreshToken": session["refreshToken"]}, headers=_bearer(session)
    )
    refresh = client.post("/api/auth/refresh-token", json={"refreshToken": session["refreshToken"]})

    assert logout.status_code == 200
    assert logout.json()["message"] == "Logged out successfully"
    assert refresh.status_code == 401


def test_logout_ignores_malformed_body(client: TestClient) -> None:
    session = _register(client)

    logout = client.post(
        "/api/auth/logout",
        content=b"{not json",
        headers={**_bearer(session), "Content-Type": "application/json"},
    )

    assert logout.status_code == 200
    assert logout.json()["message"] == "Logged out successfully"


def test_profile_requires_bearer_token(client: TestClient) -> None:
    session = _register(client)

    missing = client.get("/api/auth/profile")
    garbage = client.get("/api/auth/profile", headers={"Authorization": "Bearer garbage"})
    profile = client.get("/api/auth/profile", headers=_bearer(session))

    assert missing.status_code == 401
    assert missing.json()["errorCode"] == "AUTH_MISSING_TOKEN"
    assert garbage.json()["errorCode"] == "AUTH_TOKEN_INVALID"
    data = profile.json()["data"]
    assert data["email"] == "bob@example.com"
    assert data["hasPassword"] is True
    assert "passwordHash" not in data and "refreshTokens" not in data


def test_request_log_carries_authenticated_user_id(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    session = _register(client)

    with caplog.at_level(logging.INFO, logger="app.api.app_factory"):
        client.get("/api/auth/profile", headers=_bearer(session))
        client.get("/api/health")

    completed = [record for record in caplog.records if record.getMessage() == "request_completed"]
    assert [getattr(record, "user_id", None) for record in completed] == [
        session["user"]["id"],
        None,
    ]


def test_update_profile_and_change_password(client: TestClient) -> None:
    session = _register(client)

    updated = client.put(
        "/api/auth/profile",
        json={"name": "  Robert  ", "bio": "", "role": "admin"},
        headers=_bearer(session),
    )
    changed = client.post(
        "/api/auth/change-password",
        json={
            "currentPassword": TEST_PASSWORD,
            "newPassword": "N3w!Password",
            "confirmNewPassword": "N3w!Password",
        },
        headers=_bearer(session),
    )

    assert updated.status_code == 200
    assert updated.json()["data"]["name"] == "Robert"
    assert updated.json()["data"]["role"] == "student"
    assert changed.status_code == 200
    _login(client, "bob@example.com", "N3w!Password")


def test_verify_email_flow(client: TestClient, tmp_path: Path) -> None:
    _register(client)
    token = UserRepository(tmp_path).get_by_email("bob@example.com").email_verification_token

    verified = client.get(f"/api/auth/verify-email/{token}")
    again = client.get(f"/api/auth/verify-email/{token}")

    assert verified.status_code == 200
    assert again.status_code == 400
    session = _login(client, "bob@example.com", TEST_PASSWORD)
    assert session["user"]["isEmailVerified"] is True


def test_password_reset_flow(client: TestClient, tmp_path: Path) -> None:
    session = _register(client)

    forgot = client.post("/api/auth/forgot-password", json={"email": "bob@example.com"})
    token = UserRepository(tmp_path).get_by_email("bob@example.com").password_reset_token
    reset = client.post(f"/api/auth/reset-password/{token}", json={"password": "N3w!Password"})
    old_refresh = client.post(
        "/api/auth/refresh-token", json={"refreshToken": session["refreshToken"]}
    )

    assert forgot.status_code == 200
    assert reset.status_code == 200
    assert old_refresh.status_code == 401
    _login(client, "bob@example.com", "N3w!Password")


def test_avatar_upload_updates_profile(client: TestClient) -> None:
    session = _register(client)

    response = client.post(
        "/api/auth/avatar",
        files={"avatar": ("me.png", b"\x89PNG fake", "image/png")},
        headers=_bearer(session),
    )

    assert response.status_code == 200
    url = response.json()["data"]["user"]["avatar"]
    assert url.startswith("/uploads/avatars/avatar-")
    assert client.get(url).content == b"\x89PNG fake"


def test_unknown_route_returns_envelope(client: TestClient) -> None:
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "errorCode": "NOT_FOUND",
        "message": "Route /api/does-not-exist not found",
    }


def test_course_writes_need_verified_staff(client: TestClient) -> None:
    student = _register(client)
    admin = _login(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    anonymous = client.post("/api/courses", json=_course_payload())
    forbidden = client.post("/api/courses", json=_course_payload(), headers=_bearer(student))
    created = client.post("/api/courses", json=_course_payload(), headers=_bearer(admin))
    duplicate = client.post("/api/courses", json=_course_payload(), headers=_bearer(admin))

    assert anonymous.status_code == 401
    assert forbidden.status_code == 403
    assert forbidden.json()["errorCode"] == "AUTH_FORBIDDEN"
    assert created.status_code == 201
    assert created.json()["data"]["instructor"] == "Administrator"
    assert duplicate.status_code == 400


def test_course_visibility_and_publish_toggle(client: TestClient) -> None:
    admin = _login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    course = client.post("/api/courses", json=_course_payload(), headers=_bearer(admin)).json()[
        "data"
    ]

    hidden = client.get(f"/api/courses/{course['id']}")
    staff_list = client.get("/api/courses", headers=_bearer(admin)).json()
    toggled = client.patch(f"/api/courses/{course['id']}/toggle-publish", headers=_bearer(admin))
    public_list = client.get("/api/courses?limit=5").json()

    assert hidden.status_code == 404
    assert staff_list["pagination"]["totalItems"] == 1
    assert toggled.json()["message"] == "Course published successfully"
    assert public_list["pagination"] == {
        "currentPage": 1,
        "totalPages": 1,
        "totalItems": 1,
        "itemsPerPage": 5,
    }
    assert public_list["data"][0]["totalLessons"] == 1
    assert client.get("/api/courses/stats").json()["data"]["overview"]["publishedCourses"] == 1


def test_course_routes_validate_ids_and_bodies(client: TestClient) -> None:
    admin = _login(client, ADMIN_EMAIL, ADMIN_PASSWORD)

    bad_id = client.get("/api/courses/not-an-id")
    missing = client.delete("/api/courses/507f1f77bcf86cd799439011", headers=_bearer(admin))
    bad_body = client.post("/api/courses", json={"title": "Py"}, headers=_bearer(admin))

    assert bad_id.status_code == 400
    assert bad_id.json()["errors"][0]["message"] == "Invalid id format"
    assert missing.status_code == 404
    assert [issue["field"] for issue in bad_body.json()["errors"]] == [
        "title",
        "description",
        "modules",
    ]


def test_media_upload_is_staff_only(client: TestClient) -> None:
    student = _register(client)
    admin = _login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    files = {"file": ("notes.pdf", b"%PDF-1.4", "application/pdf")}

    forbidden = client.post("/api/uploads", files=files, headers=_bearer(student))
    stored = client.post("/api/uploads", files=files, headers=_bearer(admin))
    rejected = client.post(
        "/api/uploads",
        files={"file": ("photo.png", b"png", "image/png")},
        headers=_bearer(admin),
    )

    assert forbidden.status_code == 403
    assert stored.status_code == 201
    assert stored.json()["data"]["url"].startswith("/uploads/pdfs/file-")
    assert rejected.status_code == 400


def test_rate_limit_runs_before_validation(tmp_path: Path) -> None:
    client = TestClient(create_app(app_config(rate_limit_enabled=True), app_root=tmp_path))

    statuses = [
        client.post("/api/auth/register", json={"name": "", "email": "bad"}).status_code
        for _ in range(3)
    ]
    limited = client.post(
        "/api/auth/register",
        json={"name": "Bob", "email": "bob@example.com", "password": TEST_PASSWORD},
    )

    assert statuses == [400, 400, 400]
    assert limited.status_code == 429
    assert limited.json()["errorCode"] == "RATE_LIMITED"
    assert limited.json()["retryAfter"] > 0
    assert int(limited.headers["Retry-After"]) == limited.json()["retryAfter"]


def test_openapi_documents_error_contracts(client: TestClient) -> None:
    schema = client.app.openapi()
    login = schema["paths"]["/api/auth/login"]["post"]
    create_course = schema["paths"]["/api/courses"]["post"]

    assert login["responses"]["429"]["content"]["application/json"]["schema"]["$ref"].endswith(
        "ApiErrorResponse"
    )
    assert create_course["responses"]["403"]["content"]["application/json"]["schema"][
        "$ref"
    ].endswith("ApiErrorResponse")
