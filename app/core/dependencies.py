"""Reusable FastAPI dependencies: request body, authentication and authorization gates."""

import json
import logging
from collections.abc import Callable
from typing import Annotated, Any

from fastapi import Depends, Request, status

from app.core.config import get_settings
from app.core.cookies import read_token
from app.core.errors import api_error
from app.core.security import ExpiredTokenError, InvalidTokenError, decode_access_token
from app.models.user import UserRole
from app.schemas.auth import CurrentUser

logger = logging.getLogger(__name__)

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


async def json_body(request: Request) -> Any:
    """Parsed JSON request body, or None when the body is empty or not valid JSON."""
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def get_current_user(request: Request) -> CurrentUser:
    """
    Dependency: require a valid access token (cookie, then bearer header).

    The identity comes from the token claims alone; the users table is not read.
    Missing token and bad token are both 401, with different messages.
    """
    settings = get_settings()
    token = read_token(request, settings)
    if not token:
        raise api_error(
            status.HTTP_401_UNAUTHORIZED,
            "Unauthorized",
            "Authentication token is required",
            headers=_BEARER_CHALLENGE,
        )
    try:
        claims = decode_access_token(token, settings)
    except ExpiredTokenError as e:
        logger.warning("Authentication failed (expired token) on %s: %s", request.url.path, e.message)
        raise api_error(
            status.HTTP_401_UNAUTHORIZED,
            "Unauthorized",
            "Invalid or expired token",
            headers=_BEARER_CHALLENGE,
        ) from e
    except InvalidTokenError as e:
        logger.warning("Authentication failed (invalid token) on %s: %s", request.url.path, e.message)
        raise api_error(
            status.HTTP_401_UNAUTHORIZED,
            "Unauthorized",
            "Invalid or expired token",
            headers=_BEARER_CHALLENGE,
        ) from e
    return CurrentUser.model_validate(claims.model_dump())


def require_roles(*allowed_roles: UserRole) -> Callable[..., CurrentUser]:
    """Build a dependency that admits only callers holding one of allowed_roles (403 otherwise)."""
    allowed = frozenset(allowed_roles)

    def role_gate(
        request: Request,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
    ) -> CurrentUser:
        if current_user.role not in allowed:
            logger.warning(
                "Access denied for user %s with role %s to %s",
                current_user.id,
                current_user.role.value,
                request.url.path,
            )
            raise api_error(
                status.HTTP_403_FORBIDDEN,
                "Forbidden",
                "You do not have permission to access this resource",
            )
        return current_user

    return role_gate


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value, 10)
    except ValueError:
        return None


def require_self_or_admin(param: str = "id") -> Callable[..., CurrentUser]:
    """Build a dependency that admits admins, or the user whose id is the path parameter `param`."""

    def self_or_admin_gate(
        request: Request,
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
    ) -> CurrentUser:
        requested_id = _parse_int(request.path_params.get(param))
        if current_user.is_admin or requested_id == current_user.id:
            return current_user
        logger.warning(
            "Access denied: user %s tried to access user %s resource",
            current_user.id,
            request.path_params.get(param),
        )
        raise api_error(
            status.HTTP_403_FORBIDDEN,
            "Forbidden",
            "You can only access your own resources",
        )

    return self_or_admin_gate


require_admin = require_roles(UserRole.ADMIN)
