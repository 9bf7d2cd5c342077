"""Versioned MongoDB schema migrations for platform collections."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

import pymongo
from pymongo.errors import PyMongoError

from app.core.config import MongoConfig
from app.core.logging import CORRELATION_ID_CTX

LOGGER = logging.getLogger(__name__)

MigrationFn = Callable[[Any], None]


def _migration_20260301_01_user_indexes(db: Any) -> None:
    db["users"].create_index("user_id", unique=True)
    db["users"].create_index("email", unique=True)
    # google_id is stored as null for password accounts; only real ids are unique.
    db["users"].create_index(
        "google_id",
        unique=True,
        partialFilterExpression={"google_id": {"$type": "string"}},
        name="idx_users_google_id",
    )


def _migration_20260301_02_course_indexes(db: Any) -> None:
    db["courses"].create_index("course_id", unique=True)
    db["courses"].create_index("title", unique=True)
    db["courses"].create_index(
        [("title", pymongo.TEXT), ("description", pymongo.TEXT)],
        name="idx_courses_text",
    )
    db["courses"].create_index("category")
    db["courses"].create_index("level")
    db["courses"].create_index("is_published")
    db["courses"].create_index([("created_at", pymongo.DESCENDING)])


def _migration_20260301_03_rate_limit_ttl(db: Any) -> None:
    db["rate_limits"].create_index("key", unique=True)
    db["rate_limits"].create_index(
        "expires_at",
        expireAfterSeconds=0,
        name="idx_rate_limits_expires_at_ttl",
    )


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("20260301_01_user_indexes", _migration_20260301_01_user_indexes),
    ("20260301_02_course_indexes", _migration_20260301_02_course_indexes),
    ("20260301_03_rate_limit_ttl", _migration_20260301_03_rate_limit_ttl),
]


def apply_mongo_migrations(config: MongoConfig) -> list[str]:
    """Apply pending MongoDB migrations and return the ids applied in this run."""
    if not config.uri:
        return []

    applied: list[str] = []
    client: Any = pymongo.MongoClient(config.uri, serverSelectionTimeoutMS=3000)
    try:
        client.admin.command("ping")
        db = client[config.database]
        migration_collection = db["schema_migrations"]
        migration_collection.create_index("migration_id", unique=True)

        for migration_id, migration_fn in MIGRATIONS:
            if migration_collection.find_one({"migration_id": migration_id}):
                continue
            migration_fn(db)
            migration_collection.insert_one(
                {
                    "migration_id": migration_id,
                    "applied_at": datetime.now(timezone.utc),
                    "correlation_id": CORRELATION_ID_CTX.get(),
                }
            )
            applied.append(migration_id)
            LOGGER.info("mongo_migration_applied: %s", migration_id)
    except PyMongoError:
        LOGGER.exception("mongo_migrations_failed")
        raise
    finally:
        client.close()
    return applied
