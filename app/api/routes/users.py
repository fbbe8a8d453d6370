"""User endpoints: own profile, and admin listing, lookup, update and delete."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import (
    get_current_user,
    json_body,
    require_admin,
    require_self_or_admin,
)
from app.core.errors import api_error, validation_failed
from app.schemas.auth import CurrentUser, MessageResponse
from app.schemas.user import (
    Pagination,
    UpdateCurrentUserRequest,
    UpdateUserRequest,
    UserListQuery,
    UserRead,
    UserResponse,
    UsersListResponse,
)
from app.schemas.validation import validate_input
from app.services.users import (
    EmailExistsError,
    UserNotFoundError,
    delete_user,
    get_user_by_id,
    list_users,
    update_current_user,
    update_user,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _parse_user_id(raw: str) -> int:
    try:
        return int(raw, 10)
    except ValueError:
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            "Invalid user ID",
            "User ID must be a valid number",
        ) from None


def _not_found(e: UserNotFoundError) -> HTTPException:
    return api_error(status.HTTP_404_NOT_FOUND, "User not found", e.message)


def _email_taken() -> HTTPException:
    return api_error(
        status.HTTP_400_BAD_REQUEST,
        "Email already exists",
        "A user with this email already exists",
    )


@router.get("/me", response_model=UserResponse)
def get_me(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> UserResponse:
    """Return the caller's own profile."""
    try:
        user = get_user_by_id(db, current_user.id)
    except UserNotFoundError as e:
        raise _not_found(e) from e
    return UserResponse(
        message="User profile fetched successfully",
        user=UserRead.model_validate(user),
    )


@router.patch("/me", response_model=UserResponse)
def update_me(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    body: Annotated[Any, Depends(json_body)],
    db: Annotated[Session, Depends(get_db)],
) -> UserResponse:
    """
    Update the caller's own name, email or password.

    A role in the body is ignored; at least one editable field is required.
    """
    result = validate_input(UpdateCurrentUserRequest, body)
    if not result.ok:
        raise validation_failed(result.errors)

    try:
        user = update_current_user(db, current_user.id, result.value.to_update_fields())
    except UserNotFoundError as e:
        raise _not_found(e) from e
    except EmailExistsError as e:
        raise _email_taken() from e

    logger.info("User %s updated their profile", current_user.id)
    return UserResponse(
        message="Profile updated successfully",
        user=UserRead.model_validate(user),
    )


@router.get("", response_model=UsersListResponse)
def get_users(
    request: Request,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> UsersListResponse:
    """
    List users (admin only).

    Query: page (>=1), limit (1-100), search (name or email, case-insensitive),
    sortBy (id, name, email, role, created_at, updated_at) and sortOrder (asc, desc).
    """
    result = validate_input(UserListQuery, dict(request.query_params))
    if not result.ok:
        raise validation_failed(result.errors)
    query = result.value

    page = list_users(
        db,
        page=query.page,
        limit=query.limit,
        search=query.search,
        sort_by=query.sort_by,
        sort_order=query.sort_order,
    )
    logger.info("Users fetched: page %s, total: %s", page.page, page.total)
    return UsersListResponse(
        message="Users fetched successfully",
        users=[UserRead.model_validate(u) for u in page.items],
        pagination=Pagination(
            page=page.page,
            limit=page.limit,
            total=page.total,
            totalPages=page.total_pages,
        ),
    )


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: str,
    _caller: Annotated[CurrentUser, Depends(require_self_or_admin("user_id"))],
    db: Annotated[Session, Depends(get_db)],
) -> UserResponse:
    """Return one user (the user themself or an admin)."""
    target_id = _parse_user_id(user_id)
    try:
        user = get_user_by_id(db, target_id)
    except UserNotFoundError as e:
        raise _not_found(e) from e
    return UserResponse(
        message="User fetched successfully",
        user=UserRead.model_validate(user),
    )


@router.patch("/{user_id}", response_model=UserResponse)
def update_user_by_id(
    user_id: str,
    admin: Annotated[CurrentUser, Depends(require_admin)],
    body: Annotated[Any, Depends(json_body)],
    db: Annotated[Session, Depends(get_db)],
) -> UserResponse:
    """Update any user's name, email, password or role (admin only)."""
    target_id = _parse_user_id(user_id)
    result = validate_input(UpdateUserRequest, body)
    if not result.ok:
        raise validation_failed(result.errors)

    try:
        user = update_user(db, target_id, result.value.to_update_fields())
    except UserNotFoundError as e:
        raise _not_found(e) from e
    except EmailExistsError as e:
        raise _email_taken() from e

    logger.info("User %s updated by admin %s", target_id, admin.id)
    return UserResponse(
        message="User updated successfully",
        user=UserRead.model_validate(user),
    )


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user_by_id(
    user_id: str,
    admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> MessageResponse:
    """Delete a user (admin only). Admins cannot delete their own account."""
    target_id = _parse_user_id(user_id)
    if target_id == admin.id:
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            "Bad Request",
            "You cannot delete your own account",
        )

    try:
        delete_user(db, target_id)
    except UserNotFoundError as e:
        raise _not_found(e) from e

    logger.info("User %s deleted by admin %s", target_id, admin.id)
    return MessageResponse(message="User deleted successfully")
