"""Request/response schemas for auth endpoints and token identity."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from app.models.user import UserRole
from app.schemas.validation import clean_email, clean_name, clean_password, clean_role


class TokenClaims(BaseModel):
    """Identity claims embedded in a signed access token."""

    id: int
    email: str
    role: UserRole


class CurrentUser(TokenClaims):
    """Authenticated caller (id, email, role) for dependency injection; built from token claims only."""

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


class SignUpRequest(BaseModel):
    """Registration payload. role defaults to 'user'."""

    model_config = {"extra": "ignore"}

    name: str
    email: str
    password: str
    role: UserRole = UserRole.USER

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

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, v: Any) -> UserRole:
        return clean_role(v)


class SignInRequest(BaseModel):
    """Credentials for sign-in."""

    model_config = {"extra": "ignore"}

    email: str
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def validate_email(cls, v: Any) -> str:
        return clean_email(v)

    @field_validator("password", mode="before")
    @classmethod
    def validate_password(cls, v: Any) -> str:
        return clean_password(v)


class AuthUser(BaseModel):
    """User fields returned by sign-up and sign-in (no password, no timestamps)."""

    model_config = {"from_attributes": True}

    id: int
    name: str
    email: str
    role: UserRole


class AuthResponse(BaseModel):
    """Response for POST /auth/signup and POST /auth/signin."""

    message: str
    user: AuthUser


class MessageResponse(BaseModel):
    """Response carrying only a human-readable message."""

    message: str = Field(..., description="Outcome of the request")
