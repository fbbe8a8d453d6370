"""Pydantic request/response schemas."""

from app.schemas.auth import (
    AuthResponse,
    AuthUser,
    CurrentUser,
    MessageResponse,
    SignInRequest,
    SignUpRequest,
    TokenClaims,
)
from app.schemas.health import HealthResponse
from app.schemas.user import (
    Pagination,
    UpdateCurrentUserRequest,
    UpdateUserRequest,
    UserListQuery,
    UserRead,
    UserResponse,
    UsersListResponse,
)
from app.schemas.validation import ValidationResult, validate_input

__all__ = [
    "AuthResponse",
    "AuthUser",
    "CurrentUser",
    "HealthResponse",
    "MessageResponse",
    "Pagination",
    "SignInRequest",
    "SignUpRequest",
    "TokenClaims",
    "UpdateCurrentUserRequest",
    "UpdateUserRequest",
    "UserListQuery",
    "UserRead",
    "UserResponse",
    "UsersListResponse",
    "ValidationResult",
    "validate_input",
]
