"""Shared field rules and the validate-or-collect-messages helper for request shapes."""

import re
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticCustomError

from app.models.user import UserRole

# Error type whose message is shown to clients verbatim; any other pydantic
# error falls back to "<field path> is invalid".
FIELD_MESSAGE = "field_message"

BODY_REQUIRED_MESSAGE = "Request body is required and must be a valid JSON object"
EMPTY_UPDATE_MESSAGE = "At least one field must be provided for update"

NAME_MAX_LEN = 255
EMAIL_MAX_LEN = 255
PASSWORD_MIN_LEN = 6
PASSWORD_MAX_LEN = 128

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

ModelT = TypeVar("ModelT", bound=BaseModel)


def field_error(message: str) -> PydanticCustomError:
    """Build a validation error that carries a client-facing message."""
    return PydanticCustomError(FIELD_MESSAGE, message)


def invalid_value() -> PydanticCustomError:
    """Build a validation error rendered with the generic fallback message."""
    return PydanticCustomError("invalid_value", "Invalid value")


def clean_name(value: Any) -> str:
    if not isinstance(value, str):
        raise invalid_value()
    name = value.strip()
    if not name:
        raise field_error("Name is required")
    if len(name) > NAME_MAX_LEN:
        raise field_error("Name must be less than 255 characters")
    return name


def clean_email(value: Any) -> str:
    """Trim and lowercase an email, then check its shape and length."""
    if not isinstance(value, str):
        raise invalid_value()
    email = value.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise field_error("Invalid email format")
    if len(email) > EMAIL_MAX_LEN:
        raise field_error("Email must be less than 255 characters")
    return email


def clean_password(value: Any) -> str:
    if not isinstance(value, str):
        raise invalid_value()
    if len(value) < PASSWORD_MIN_LEN:
        raise field_error("Password must be at least 6 characters")
    if len(value) > PASSWORD_MAX_LEN:
        raise field_error("Password must be less than 128 characters")
    return value


def clean_role(value: Any) -> UserRole:
    if isinstance(value, UserRole):
        return value
    try:
        return UserRole(value)
    except ValueError:
        raise field_error("Invalid role") from None


def format_validation_errors(errors: list[dict[str, Any]]) -> list[str]:
    """
    Turn pydantic error dicts into one message per violated field.

    Order follows the errors (field declaration order). Only the first error for a
    given path is kept.
    """
    messages: list[str] = []
    seen: set[tuple[Any, ...]] = set()
    for err in errors:
        loc = tuple(err.get("loc", ()))
        # FastAPI prefixes locations with the request part ("body", "query").
        if loc and loc[0] in ("body", "query", "path"):
            loc = loc[1:]
        if loc in seen:
            continue
        seen.add(loc)
        if err.get("type") == FIELD_MESSAGE:
            messages.append(str(err.get("msg")))
            continue
        path = ".".join(str(part) for part in loc)
        messages.append(f"{path} is invalid" if path else "Request is invalid")
    return messages


@dataclass(frozen=True)
class ValidationResult(Generic[ModelT]):
    """Either the validated model or the list of violation messages."""

    value: ModelT | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.errors


def validate_input(model: type[ModelT], data: Any) -> ValidationResult[ModelT]:
    """Validate raw request input against a shape; never raises for bad input."""
    if not isinstance(data, dict):
        return ValidationResult(errors=[BODY_REQUIRED_MESSAGE])
    try:
        return ValidationResult(value=model.model_validate(data))
    except ValidationError as e:
        return ValidationResult(errors=format_validation_errors(e.errors()))
