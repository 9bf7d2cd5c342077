"""Sliding-window request rate limiting behind a swappable counter store."""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Protocol

from fastapi import Header, Request
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.api.errors import ApiError, ApiErrorCode
from app.auth.gate import extract_bearer_token
from app.core.config import MongoConfig, RateLimitConfig
from app.core.document_store import open_mongo_database

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of counting one request against a window."""

    allowed: bool
    retry_after: int = 0


@dataclass(frozen=True)
class RateLimitPolicy:
    """Named request budget per key and window."""

    name: str
    limit: int
    window_seconds: int
    message: str


AUTH = RateLimitPolicy(
    "auth", 10, 15 * 60, "Too many authentication attempts, please try again in 15 minutes"
)
LOGIN = RateLimitPolicy(
    "login", 5, 15 * 60, "Too many login attempts, please try again in 15 minutes"
)
REGISTER = RateLimitPolicy(
    "register", 3, 60 * 60, "Too many registration attempts, please try again in 1 hour"
)
PASSWORD_RESET = RateLimitPolicy(
    "password_reset",
    3,
    60 * 60,
    "Too many password reset requests, please try again in 1 hour",
)
EMAIL_VERIFICATION = RateLimitPolicy(
    "email_verification",
    5,
    60 * 60,
    "Too many email verification requests, please try again in 1 hour",
)
PROFILE_UPDATE = RateLimitPolicy(
    "profile_update", 10, 15 * 60, "Too many profile updates, please try again in 15 minutes"
)
REFRESH_TOKEN = RateLimitPolicy(
    "refresh_token",
    20,
    5 * 60,
    "Too many token refresh attempts, please try again in 5 minutes",
)
STRICT = RateLimitPolicy(
    "strict", 1, 60 * 60, "This action is rate limited. Please wait 1 hour before trying again"
)


def _retry_after(oldest_hit: float, window_seconds: int, now: float) -> int:
    return max(1, math.ceil(oldest_hit + window_seconds - now))


class CounterStore(Protocol):
    """Increment-and-check operation shared by every limiter backend."""

    def hit(self, key: str, limit: int, window_seconds: int, now: float) -> RateLimitDecision:
        """Count one request for ``key`` unless the window is already full."""


class InMemoryCounterStore:
    """Process-local sliding window; expired hits are evicted on each check.

    Keys whose newest hit has left its window are swept at most once per
    ``sweep_interval`` seconds, so the map only holds callers seen recently.
    """

    def __init__(self, sweep_interval: float = 60.0) -> None:
        self._hits: dict[str, deque[float]] = {}
        self._windows: dict[str, int] = {}
        self._sweep_interval = sweep_interval
        self._last_sweep: float | None = None
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._hits)

    def hit(self, key: str, limit: int, window_seconds: int, now: float) -> RateLimitDecision:
        window_start = now - window_seconds
        with self._lock:
            self._sweep(now)
            hits = self._hits.setdefault(key, deque())
            self._windows[key] = window_seconds
            while hits and hits[0] <= window_start:
                hits.popleft()
            if len(hits) >= limit:
                return RateLimitDecision(False, _retry_after(hits[0], window_seconds, now))
            hits.append(now)
            return RateLimitDecision(True)

    def _sweep(self, now: float) -> None:
        if self._last_sweep is not None and now - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = now
        stale = [
            key
            for key, hits in self._hits.items()
            if not hits or hits[-1] <= now - self._windows[key]
        ]
        for key in stale:
            del self._hits[key]
            del self._windows[key]


class MongoCounterStore:
    """Sliding window kept in a shared ``rate_limits`` collection.

    A hit is recorded with one conditional upsert that only matches while the
    window holds fewer than ``limit`` entries; a full window makes the upsert
    collide with the unique ``key`` index, which is reported as a rejection.
    """

    def __init__(self, collection: Any) -> None:
        self._collection = collection
        self._collection.create_index("key", unique=True)

    def hit(self, key: str, limit: int, window_seconds: int, now: float) -> RateLimitDecision:
        window_start = now - window_seconds
        self._collection.update_one({"key": key}, {"$pull": {"hits": {"$lte": window_start}}})
        expires_at = datetime.fromtimestamp(now + window_seconds, tz=timezone.utc)
        # Two first hits on a new key race on the upsert; the retry sees the winner's document.
        for _ in range(2):
            try:
                self._collection.find_one_and_update(
                    {"key": key, f"hits.{limit - 1}": {"$exists": False}},
                    {"$push": {"hits": now}, "$set": {"expires_at": expires_at}},
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                continue
            return RateLimitDecision(True)
        doc = self._collection.find_one({"key": key}, {"hits": 1}) or {}
        hits = [float(h) for h in doc.get("hits") or [] if float(h) > window_start]
        oldest = min(hits) if hits else now
        return RateLimitDecision(False, _retry_after(oldest, window_seconds, now))


def build_counter_store(config: RateLimitConfig, mongo: MongoConfig) -> CounterStore:
    """Pick the configured backend, falling back to process memory."""
    if config.backend == "mongo":
        db = open_mongo_database(mongo.uri, mongo.database)
        if db is not None:
            return MongoCounterStore(db["rate_limits"])
        LOGGER.warning("rate_limit_backend_unavailable: falling back to memory")
    return InMemoryCounterStore()


class RateLimiter:
    """Applies named policies to a caller key (user id when known, else client IP)."""

    def __init__(
        self,
        store: CounterStore,
        *,
        enabled: bool = True,
        identify: Callable[[str], str | None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._enabled = enabled
        self._identify = identify
        self._clock = clock

    def check(self, policy: RateLimitPolicy, identity_key: str) -> None:
        """Count a request and raise 429 once the policy budget is spent."""
        if not self._enabled:
            return
        decision = self._store.hit(
            f"{policy.name}:{identity_key}",
            policy.limit,
            policy.window_seconds,
            self._clock(),
        )
        if decision.allowed:
            return
        LOGGER.warning(
            "rate_limited: %s %s",
            policy.name,
            identity_key,
            extra={"error_code": str(ApiErrorCode.RATE_LIMITED)},
        )
        raise ApiError(
            status_code=429,
            error_code=ApiErrorCode.RATE_LIMITED,
            message=policy.message,
            headers={"Retry-After": str(decision.retry_after)},
            retry_after=decision.retry_after,
        )

    def key_for(self, request: Request, authorization: str | None) -> str:
        token = extract_bearer_token(authorization)
        if token and self._identify is not None:
            user_id = self._identify(token)
            if user_id:
                return f"user:{user_id}"
        client_ip = request.client.host if request.client else ""
        return f"ip:{client_ip or 'unknown'}"

    def dependency(self, policy: RateLimitPolicy) -> Callable[..., None]:
        """Route dependency enforcing ``policy`` before body validation and auth."""

        def enforce_rate_limit(
            request: Request, authorization: str | None = Header(default=None)
        ) -> None:
            self.check(policy, self.key_for(request, authorization))

        return enforce_rate_limit
