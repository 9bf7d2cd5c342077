"""Composable request payload sanitization and per-field validation.

A ``RuleSet`` is a list of ``Field`` declarations. Each field owns an ordered
chain of checks; the chain stops at its first failure, while every declared
field is always evaluated so one request reports all rejected fields at once.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Iterable, Mapping
from urllib.parse import urlparse

from fastapi import Request

from app.api.errors import ApiError, ApiErrorCode

MISSING: Any = object()

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@.]{2,}$")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]{7,20}$")
OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")

Predicate = Callable[[Any, Mapping[str, Any]], bool]


def sanitize_payload(value: Any) -> Any:
    """Trim string leaves and drop keys (or list items) that end up empty."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        cleaned: dict[str, Any] = {}
        for key, item in value.items():
            item = sanitize_payload(item)
            if item == "":
                continue
            cleaned[key] = item
        return cleaned
    if isinstance(value, list):
        return [item for item in (sanitize_payload(v) for v in value) if item != ""]
    return value


def pick(payload: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path, returning ``MISSING`` when any hop is absent."""
    node: Any = payload
    for key in path.split("."):
        if not isinstance(node, Mapping) or key not in node:
            return MISSING
        node = node[key]
    return node


def _is_missing(value: Any) -> bool:
    return value is MISSING or value is None or value == ""


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def is_strong_password(value: Any) -> bool:
    """At least 8 chars with upper, lower, digit and a symbol."""
    if not isinstance(value, str) or len(value) < 8:
        return False
    return (
        re.search(r"[a-z]", value) is not None
        and re.search(r"[A-Z]", value) is not None
        and re.search(r"\d", value) is not None
        and re.search(r"[^A-Za-z0-9]", value) is not None
    )


def is_object_id(value: Any) -> bool:
    return isinstance(value, str) and OBJECT_ID_RE.fullmatch(value) is not None


@dataclass(frozen=True)
class Check:
    predicate: Predicate
    message: str


class Field:
    """Declaration of one payload field and its chain of checks."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._presence: str | None = None
        self._required_message = ""
        self._checks: list[Check] = []

    def required(self, message: str) -> "Field":
        self._presence = "required"
        self._required_message = message
        return self

    def optional(self) -> "Field":
        self._presence = "optional"
        return self

    def check(self, predicate: Predicate, message: str) -> "Field":
        self._checks.append(Check(predicate, message))
        return self

    def length(self, message: str, *, min: int = 0, max: int | None = None) -> "Field":
        def _length(value: Any, _payload: Mapping[str, Any]) -> bool:
            if not isinstance(value, str):
                return False
            return len(value) >= min and (max is None or len(value) <= max)

        return self.check(_length, message)

    def one_of(self, choices: Iterable[Any], message: str) -> "Field":
        allowed = tuple(choices)
        return self.check(lambda value, _p: value in allowed, message)

    def number(
        self,
        message: str,
        *,
        minimum: float | None = None,
        maximum: float | None = None,
    ) -> "Field":
        def _number(value: Any, _payload: Mapping[str, Any]) -> bool:
            number = _as_number(value)
            if number is None:
                return False
            if minimum is not None and number < minimum:
                return False
            return maximum is None or number <= maximum

        return self.check(_number, message)

    def non_negative(self, message: str) -> "Field":
        return self.number(message, minimum=0)

    def matches(self, pattern: re.Pattern[str] | str, message: str) -> "Field":
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        return self.check(
            lambda value, _p: isinstance(value, str) and compiled.fullmatch(value) is not None,
            message,
        )

    def email(self, message: str) -> "Field":
        return self.matches(EMAIL_RE, message)

    def phone(self, message: str) -> "Field":
        return self.matches(PHONE_RE, message)

    def strong_password(self, message: str) -> "Field":
        return self.check(lambda value, _p: is_strong_password(value), message)

    def equals_field(self, other_path: str, message: str) -> "Field":
        return self.check(lambda value, payload: value == pick(payload, other_path), message)

    def object_id(self, message: str) -> "Field":
        return self.check(lambda value, _p: is_object_id(value), message)

    def array(self, message: str, *, min_length: int = 0) -> "Field":
        return self.check(
            lambda value, _p: isinstance(value, list) and len(value) >= min_length,
            message,
        )

    def url(self, message: str) -> "Field":
        def _url(value: Any, _payload: Mapping[str, Any]) -> bool:
            if not isinstance(value, str):
                return False
            parsed = urlparse(value)
            return parsed.scheme in {"http", "https"} and bool(parsed.netloc)

        return self.check(_url, message)

    def iso_date(self, message: str) -> "Field":
        def _iso_date(value: Any, _payload: Mapping[str, Any]) -> bool:
            if not isinstance(value, str):
                return False
            try:
                date.fromisoformat(value)
            except ValueError:
                return False
            return True

        return self.check(_iso_date, message)

    def email_domain(self, domains: Iterable[str], message: str) -> "Field":
        allowed = {d.lower() for d in domains}

        def _domain(value: Any, _payload: Mapping[str, Any]) -> bool:
            if not allowed:
                return True
            return isinstance(value, str) and value.rsplit("@", 1)[-1].lower() in allowed

        return self.check(_domain, message)

    def run(self, payload: Mapping[str, Any]) -> dict[str, Any] | None:
        """Return the first failing issue for this field, or ``None``."""
        raw = pick(payload, self.path)
        value = None if raw is MISSING else raw
        if _is_missing(raw):
            if self._presence == "required":
                return {"field": self.path, "message": self._required_message, "value": value}
            if self._presence == "optional":
                return None
        for check in self._checks:
            if not check.predicate(value, payload):
                return {"field": self.path, "message": check.message, "value": value}
        return None


class RuleSet:
    """Ordered field declarations validated together."""

    def __init__(self, *fields: Field) -> None:
        self.fields = fields

    def validate(self, payload: Mapping[str, Any]) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        for field in self.fields:
            issue = field.run(payload)
            if issue is not None:
                issues.append(issue)
        return issues


def validation_failed(issues: list[dict[str, Any]]) -> ApiError:
    return ApiError(
        status_code=400,
        error_code=ApiErrorCode.VALIDATION_ERROR,
        message="Validation failed",
        errors=issues,
    )


def run_pipeline(payload: Any, rules: RuleSet) -> dict[str, Any]:
    """Sanitize then validate a payload, raising a 400 with every failed field."""
    if not isinstance(payload, dict):
        raise validation_failed(
            [{"field": "", "message": "Request body must be a JSON object", "value": None}]
        )
    clean = sanitize_payload(payload)
    issues = rules.validate(clean)
    if issues:
        raise validation_failed(issues)
    return clean


def payload_too_large(limit: int) -> ApiError:
    return ApiError(
        status_code=413,
        error_code=ApiErrorCode.REQUEST_TOO_LARGE,
        message=f"Payload too large (limit {limit} bytes).",
    )


async def read_json_object(request: Request, max_bytes: int | None = None) -> Any:
    """Read a JSON request body; an empty body counts as ``{}``.

    The body is streamed so requests without ``Content-Length`` (chunked
    transfer) still stop at ``max_bytes``, which defaults to the limit the
    HTTP middleware publishes on ``app.state``.
    """
    if max_bytes is None:
        max_bytes = getattr(request.app.state, "request_max_bytes", None)
    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if max_bytes is not None and received > max_bytes:
            raise payload_too_large(max_bytes)
        chunks.append(chunk)
    raw = b"".join(chunks)
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise validation_failed(
            [{"field": "", "message": "Malformed JSON body", "value": None}]
        ) from exc


def validated_body(rules: RuleSet) -> Callable[[Request], Awaitable[dict[str, Any]]]:
    """FastAPI dependency running the pipeline before the handler."""

    async def validated_payload(request: Request) -> dict[str, Any]:
        return run_pipeline(await read_json_object(request), rules)

    return validated_payload


def require_object_id(value: str, field: str = "id") -> str:
    """Reject path/body identifiers that are not 24-hex object ids."""
    if not is_object_id(value):
        raise validation_failed(
            [{"field": field, "message": f"Invalid {field} format", "value": value}]
        )
    return value
