"""FastAPI application assembly."""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.http_setup import register_exception_handlers, register_http_middleware
from app.api.runtime_routes import register_runtime_routes
from app.auth.gate import AuthGate, create_auth_dependencies
from app.auth.rate_limiter import RateLimiter, build_counter_store
from app.auth.repository import UserRepository
from app.auth.router import create_auth_router
from app.auth.service import AuthService
from app.auth.tokens import TokenService
from app.core.config import AppConfig
from app.core.mongo_migrations import apply_mongo_migrations
from app.core.security import TokenError
from app.courses.repository import CourseRepository
from app.courses.router import create_courses_router
from app.courses.service import CourseService
from app.email.service import EmailService
from app.uploads.router import create_uploads_router
from app.uploads.service import UploadService

LOGGER = logging.getLogger(__name__)


def create_app(config: AppConfig, *, app_root: Path) -> FastAPI:
    """Wire stores, services and routers into a FastAPI app."""
    app = FastAPI(title="Course Platform API", version="1.0.0")
    apply_mongo_migrations(config.mongo)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(
        app, logger=LOGGER, expose_error_details=config.security.expose_error_details
    )
    register_runtime_routes(app)

    uploads_dir = (app_root / config.uploads.uploads_dir).resolve()
    upload_service = UploadService(
        uploads_dir,
        media_max_bytes=config.uploads.media_max_bytes,
        avatar_max_bytes=config.uploads.avatar_max_bytes,
    )
    app.mount("/uploads", StaticFiles(directory=str(uploads_dir)), name="uploads")

    user_repo = UserRepository(
        app_root, mongo_uri=config.mongo.uri, mongo_db=config.mongo.database
    )
    course_repo = CourseRepository(
        app_root, mongo_uri=config.mongo.uri, mongo_db=config.mongo.database
    )
    tokens = TokenService(config.auth)

    def identify(token: str) -> str | None:
        try:
            return str(tokens.decode_access_token(token).get("sub") or "") or None
        except TokenError:
            return None

    rate_limiter = RateLimiter(
        build_counter_store(config.rate_limit, config.mongo),
        enabled=config.rate_limit.enabled,
        identify=identify,
    )
    auth = create_auth_dependencies(AuthGate(repo=user_repo, tokens=tokens))

    auth_service = AuthService(
        user_repo, tokens, EmailService(config.email), config.auth, courses=course_repo
    )
    auth_service.bootstrap_admin_user()

    app.include_router(create_auth_router(auth_service, auth, rate_limiter, upload_service))
    app.include_router(create_courses_router(CourseService(course_repo), auth))
    app.include_router(create_uploads_router(upload_service, auth))
    return app
