"""Where the access token travels: an HTTP-only cookie, or an Authorization bearer header."""

from typing import TYPE_CHECKING

from starlette.requests import Request
from starlette.responses import Response

if TYPE_CHECKING:
    from app.core.config import Settings

BEARER_SCHEME = "bearer"


def set_token_cookie(response: Response, token: str, settings: "Settings") -> None:
    """Store the token in a cookie whose lifetime matches the token's."""
    response.set_cookie(
        key=settings.AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=settings.JWT_EXPIRE_MINUTES * 60,
    )


def clear_token_cookie(response: Response, settings: "Settings") -> None:
    response.delete_cookie(
        key=settings.AUTH_COOKIE_NAME,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, credentials = authorization.strip().partition(" ")
    if scheme.lower() != BEARER_SCHEME:
        return None
    return credentials.strip() or None


def read_token(request: Request, settings: "Settings") -> str | None:
    """Return the access token from the cookie, else from the bearer header, else None."""
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token
    return _bearer_token(request.headers.get("authorization"))
