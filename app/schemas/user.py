"""Request/response schemas for user management endpoints."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.user import UserRole
from app.schemas.validation import (
    EMPTY_UPDATE_MESSAGE,
    clean_email,
    clean_name,
    clean_password,
    clean_role,
    field_error,
    invalid_value,
)

# Columns GET /users may sort by; anything else falls back to the default.
SORTABLE_FIELDS: tuple[str, ...] = ("id", "name", "email", "role", "created_at", "updated_at")
DEFAULT_SORT_FIELD = "created_at"

SortField = Literal["id", "name", "email", "role", "created_at", "updated_at"]
SortOrder = Literal["asc", "desc"]

MAX_PAGE_SIZE = 100
SEARCH_MAX_LEN = 255


class UserRead(BaseModel):
    """User as returned by read and update paths (never includes the password hash)."""

    model_config = {"from_attributes": True}

    id: int
    name: str
    email: str
    role: UserRole
    created_at: datetime
    updated_at: datetime


class UserResponse(BaseModel):
    message: str
    user: UserRead


class _UserUpdateBase(BaseModel):
    """Partial update: every field optional, at least one required, null rejected."""

    model_config = {"extra": "ignore"}

    name: str | None = None
    email: str | None = None
    password: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v: Any) -> str:
        return clean_name(v)

    @field_validator("email", mode="before")
    @classmethod
    def validate_email(cls, v: Any) -> str:
        return clean_email(v)

    @field_validator("password", mode="before")
    @classmethod
    def validate_password(cls, v: Any) -> str:
        return clean_password(v)

    @model_validator(mode="after")
    def require_one_field(self) -> "_UserUpdateBase":
        if not self.model_fields_set:
            raise field_error(EMPTY_UPDATE_MESSAGE)
        return self

    def to_update_fields(self) -> dict[str, Any]:
        """Return only the fields the caller actually sent."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class UpdateCurrentUserRequest(_UserUpdateBase):
    """Self-service profile update: name, email and password only."""


class UpdateUserRequest(_UserUpdateBase):
    """Admin update: may also change the role."""

    role: UserRole | None = None

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, v: Any) -> UserRole:
        return clean_role(v)


def _coerce_positive_int(v: Any) -> int:
    if isinstance(v, bool):
        raise invalid_value()
    if isinstance(v, int):
        return v
    if isinstance(v, str) and v.isascii() and v.isdigit():
        return int(v)
    raise invalid_value()


class UserListQuery(BaseModel):
    """Query parameters for GET /users with defaults and coercion from strings."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=MAX_PAGE_SIZE)
    search: str = Field(default="", max_length=SEARCH_MAX_LEN)
    sort_by: SortField = Field(default=DEFAULT_SORT_FIELD, alias="sortBy")
    sort_order: SortOrder = Field(default="desc", alias="sortOrder")

    @field_validator("page", "limit", mode="before")
    @classmethod
    def coerce_numeric_string(cls, v: Any) -> int:
        return _coerce_positive_int(v)

    @field_validator("search", mode="before")
    @classmethod
    def normalize_search(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v

    @field_validator("sort_by", mode="before")
    @classmethod
    def fallback_sort_by(cls, v: Any) -> str:
        return v if v in SORTABLE_FIELDS else DEFAULT_SORT_FIELD

    @field_validator("sort_order", mode="before")
    @classmethod
    def normalize_sort_order(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class UsersListResponse(BaseModel):
    """Response for GET /users (admin only)."""

    message: str
    users: list[UserRead]
    pagination: Pagination
