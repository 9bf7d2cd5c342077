"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AuthConfig:
    """Authentication-related configuration."""

    secret_key: str
    refresh_secret_key: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    email_verification_ttl_seconds: int
    password_reset_ttl_seconds: int
    issuer: str
    bcrypt_rounds: int
    client_url: str
    admin_email: str
    admin_password: str


@dataclass(frozen=True)
class MongoConfig:
    """Document store connection settings."""

    uri: str
    database: str


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int
    expose_error_details: bool


@dataclass(frozen=True)
class RateLimitConfig:
    """Request rate limiting settings."""

    enabled: bool
    backend: str


@dataclass(frozen=True)
class EmailConfig:
    """Outbound SMTP settings. Empty host means log-only dev mode."""

    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_use_tls: bool
    from_email: str
    from_name: str


@dataclass(frozen=True)
class UploadConfig:
    """Static upload storage settings."""

    uploads_dir: str
    media_max_bytes: int
    avatar_max_bytes: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    auth: AuthConfig
    mongo: MongoConfig
    logging: LoggingConfig
    security: SecurityConfig
    rate_limit: RateLimitConfig
    email: EmailConfig
    uploads: UploadConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        secret_key = (
            os.getenv("JWT_SECRET", "").strip() or "dev-insecure-secret-change-me"
        )
        refresh_secret_key = (
            os.getenv("JWT_REFRESH_SECRET", "").strip()
            or "dev-insecure-refresh-secret-change-me"
        )
        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "900"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", "604800"))
        verification_ttl = int(
            os.getenv("AUTH_EMAIL_VERIFICATION_TTL_SECONDS", "86400")
        )
        reset_ttl = int(os.getenv("AUTH_PASSWORD_RESET_TTL_SECONDS", "3600"))
        issuer = os.getenv("AUTH_ISSUER", "course-platform").strip() or "course-platform"
        bcrypt_rounds = int(os.getenv("AUTH_BCRYPT_ROUNDS", "12"))
        client_url = (
            os.getenv("CLIENT_URL", "http://localhost:3000").strip().rstrip("/")
        )
        admin_email = os.getenv("AUTH_ADMIN_EMAIL", "").strip().lower()
        admin_password = os.getenv("AUTH_ADMIN_PASSWORD", "").strip()

        mongo_uri = os.getenv("MONGODB_URI", "").strip()
        mongo_db = (
            os.getenv("MONGODB_DB", "course_platform").strip() or "course_platform"
        )

        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(10 * 1024 * 1024)))

        email_port = int(os.getenv("SMTP_PORT", "587"))
        smtp_user = os.getenv("SMTP_USER", "").strip()

        return AppConfig(
            auth=AuthConfig(
                secret_key=secret_key,
                refresh_secret_key=refresh_secret_key,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                email_verification_ttl_seconds=verification_ttl,
                password_reset_ttl_seconds=reset_ttl,
                issuer=issuer,
                bcrypt_rounds=bcrypt_rounds,
                client_url=client_url,
                admin_email=admin_email,
                admin_password=admin_password,
            ),
            mongo=MongoConfig(uri=mongo_uri, database=mongo_db),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
                expose_error_details=_env_flag("EXPOSE_ERROR_DETAILS"),
            ),
            rate_limit=RateLimitConfig(
                enabled=_env_flag("RATE_LIMIT_ENABLED", "1"),
                backend=os.getenv("RATE_LIMIT_BACKEND", "memory").strip().lower()
                or "memory",
            ),
            email=EmailConfig(
                smtp_host=os.getenv("SMTP_HOST", "").strip(),
                smtp_port=email_port,
                smtp_user=smtp_user,
                smtp_password=os.getenv("SMTP_PASS", ""),
                smtp_use_tls=_env_flag("SMTP_USE_TLS", "1"),
                from_email=os.getenv("EMAIL_FROM", "").strip() or smtp_user,
                from_name=os.getenv("EMAIL_FROM_NAME", "Course Platform").strip()
                or "Course Platform",
            ),
            uploads=UploadConfig(
                uploads_dir=os.getenv("UPLOADS_DIR", "uploads").strip() or "uploads",
                media_max_bytes=int(
                    os.getenv("UPLOAD_MEDIA_MAX_BYTES", str(100 * 1024 * 1024))
                ),
                avatar_max_bytes=int(
                    os.getenv("UPLOAD_AVATAR_MAX_BYTES", str(5 * 1024 * 1024))
                ),
            ),
        )
