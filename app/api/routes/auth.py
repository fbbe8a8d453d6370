"""Sign-up, sign-in and sign-out endpoints."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.cookies import clear_token_cookie, set_token_cookie
from app.core.database import get_db
from app.core.dependencies import json_body
from app.core.errors import api_error, validation_failed
from app.core.security import create_access_token
from app.models.user import User
from app.schemas.auth import (
    AuthResponse,
    AuthUser,
    MessageResponse,
    SignInRequest,
    SignUpRequest,
    TokenClaims,
)
from app.schemas.validation import validate_input
from app.services.auth import InvalidCredentialsError, authenticate_user, register_user
from app.services.users import EmailExistsError

logger = logging.getLogger(__name__)
router = APIRouter()


def _issue_session(response: Response, user: User) -> None:
    """Sign a token for the user and store it in the session cookie."""
    token = create_access_token(TokenClaims(id=user.id, email=user.email, role=user.role))
    set_token_cookie(response, token, get_settings())


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def signup(
    response: Response,
    body: Annotated[Any, Depends(json_body)],
    db: Annotated[Session, Depends(get_db)],
) -> AuthResponse:
    """
    Register a new account and sign it in.

    role is optional and defaults to 'user'. The access token is returned in the
    HTTP-only session cookie.
    """
    result = validate_input(SignUpRequest, body)
    if not result.ok:
        raise validation_failed(result.errors)
    data = result.value

    try:
        user = register_user(
            db,
            name=data.name,
            email=data.email,
            password=data.password,
            role=data.role,
        )
    except EmailExistsError as e:
        logger.info("Sign-up rejected, email already registered: %s", e.email)
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            "Email already exists",
            "A user with this email already exists",
        ) from e

    _issue_session(response, user)
    logger.info("User registered successfully: %s", user.email)
    return AuthResponse(
        message="User registered successfully",
        user=AuthUser.model_validate(user),
    )


@router.post("/signin", response_model=AuthResponse)
def signin(
    response: Response,
    body: Annotated[Any, Depends(json_body)],
    db: Annotated[Session, Depends(get_db)],
) -> AuthResponse:
    """Authenticate with email and password; the access token is set as the session cookie."""
    result = validate_input(SignInRequest, body)
    if not result.ok:
        raise validation_failed(result.errors)
    data = result.value

    try:
        user = authenticate_user(db, data.email, data.password)
    except InvalidCredentialsError as e:
        raise api_error(
            status.HTTP_401_UNAUTHORIZED,
            "Invalid credentials",
            "Invalid email or password",
        ) from e

    _issue_session(response, user)
    logger.info("User signed in successfully: %s", user.email)
    return AuthResponse(
        message="User signed in successfully",
        user=AuthUser.model_validate(user),
    )


@router.post("/signout", response_model=MessageResponse)
def signout(response: Response) -> MessageResponse:
    clear_token_cookie(response, get_settings())
    logger.info("User signed out successfully")
    return MessageResponse(message="User signed out successfully")
