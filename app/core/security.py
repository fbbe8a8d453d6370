"""Password hashing and JWT creation/verification for authentication."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt
from pydantic import ValidationError

from app.core.config import Settings, get_settings
from app.schemas.auth import TokenClaims

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes of its input.
BCRYPT_MAX_BYTES = 72


class HashingError(Exception):
    """Raised when bcrypt fails internally (never used for a password mismatch)."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


class TokenError(Exception):
    """Base class for access token verification failures."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidTokenError(TokenError):
    """Raised for a malformed token, a bad signature or unusable claims."""


class ExpiredTokenError(TokenError):
    """Raised when a correctly signed token is past its expiry."""


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    try:
        salt = bcrypt.gensalt(rounds=get_settings().BCRYPT_ROUNDS)
        return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")
    except (ValueError, TypeError) as e:
        logger.error("Error hashing the password: %s", e)
        raise HashingError("Error hashing the password", cause=e) from e


def verify_password(plain_password: str, hashed: str) -> bool:
    """
    Verify a plain password against a stored hash.

    Returns False only on mismatch; a malformed hash raises HashingError.
    """
    pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError) as e:
        logger.error("Error verifying the password: %s", e)
        raise HashingError("Error verifying the password", cause=e) from e


def create_access_token(
    claims: TokenClaims,
    expires_delta: timedelta | None = None,
    settings: Settings | None = None,
) -> str:
    """Create a JWT access token carrying id, email and role plus iat and exp."""
    settings = settings or get_settings()
    now = datetime.now(UTC)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    payload: dict[str, Any] = {
        "id": claims.id,
        "email": claims.email,
        "role": claims.role.value,
        "iat": now,
        "exp": now + expires_delta,
    }
    secret = settings.JWT_SECRET.get_secret_value()
    return jwt.encode(
        payload,
        secret,
        algorithm=settings.JWT_ALGORITHM,
    )


def decode_access_token(token: str, settings: Settings | None = None) -> TokenClaims:
    """
    Decode and validate a JWT; return its identity claims.

    Raises ExpiredTokenError when the token is past exp and InvalidTokenError
    for any other verification failure.
    """
    settings = settings or get_settings()
    secret = settings.JWT_SECRET.get_secret_value()
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise ExpiredTokenError("Token has expired") from e
    except jwt.PyJWTError as e:
        raise InvalidTokenError(f"Token verification failed: {e}") from e
    try:
        return TokenClaims.model_validate(payload)
    except ValidationError as e:
        raise InvalidTokenError("Invalid token payload") from e
