"""Document store helpers: MongoDB connection and JSON-file fallback collections."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import RLock
from typing import Any

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

LOGGER = logging.getLogger(__name__)


def open_mongo_database(uri: str, database: str) -> Database | None:
    """Connect to MongoDB when a URI is configured, else return ``None``."""
    if not uri:
        return None
    try:
        client: MongoClient = MongoClient(uri, serverSelectionTimeoutMS=3000)
        client.admin.command("ping")
    except PyMongoError:
        LOGGER.exception("mongo_unavailable_using_file_store")
        return None
    return client[database]


class JsonFileCollection:
    """List-of-documents JSON file used when MongoDB is not configured."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self.lock = RLock()

    def read(self) -> list[dict[str, Any]]:
        """Read list payload from JSON file with empty fallback."""
        if not self._path.exists():
            return []
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            LOGGER.warning("json_store_unreadable: %s", self._path)
            return []
        return payload if isinstance(payload, list) else []

    def write(self, items: list[dict[str, Any]]) -> None:
        """Persist list payload to JSON file."""
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)
