from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Type, TypeVar

from oficina.time_utils import parse_iso_datetime


E = TypeVar("E", bound=Enum)


class DomainError(Exception):
    """Base for every error a core operation may raise."""

    status_code = 500
    code = "error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(DomainError, ValueError):
    """400-level input problem (missing field, non-positive amount, bad enum value)."""

    status_code = 400
    code = "validation_error"


class Forbidden(DomainError):
    """403: the actor lacks the role the action requires."""

    status_code = 403
    code = "forbidden"


class NotFound(DomainError):
    """404: missing entity, or one that belongs to another establishment."""

    status_code = 404
    code = "not_found"


class Conflict(DomainError):
    """409-level business rule conflict."""

    status_code = 409
    code = "conflict"


class InvalidTransition(DomainError):
    """409: the aggregate's current state does not allow the change."""

    status_code = 409
    code = "invalid_transition"


class SessionAlreadyOpen(Conflict):
    code = "session_already_open"


class DuplicateServiceLine(Conflict):
    code = "duplicate_service_line"


class SessionClosed(InvalidTransition):
    code = "session_closed"


# =============================================================================
# PAYLOAD HELPERS
# =============================================================================

def require_payload(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def require_fields(payload: dict, fields: Iterable[str]) -> None:
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def parse_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer coercion.

    Rejects booleans, floats, decimal strings and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def parse_optional_int(value: Any, field: str) -> int | None:
    if value in (None, ""):
        return None
    return parse_int(value, field)


def parse_enum(enum_cls: Type[E], value: Any, field: str) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field}: {value!r}. Must be one of: {allowed}")


def parse_text(value: Any, field: str, *, max_length: int | None = None, required: bool = True) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    text = str(value).strip()
    if not text:
        if required:
            raise ValidationError(f"{field} cannot be blank")
        return None
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def parse_datetime(value: Any, field: str):
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y"}
    return bool(value)
