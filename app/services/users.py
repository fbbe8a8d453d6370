"""User repository: CRUD, search, sort and pagination over the users table."""

import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.security import hash_password
from app.models.user import User, UserRole
from app.schemas.user import DEFAULT_SORT_FIELD

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "id": User.id,
    "name": User.name,
    "email": User.email,
    "role": User.role,
    "created_at": User.created_at,
    "updated_at": User.updated_at,
}

# Fields a caller may never set through an update payload.
IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at", "password_hash"})
UPDATABLE_FIELDS = frozenset({"name", "email", "role", "password_hash"})

LIKE_ESCAPE = "\\"


class UserNotFoundError(Exception):
    """Raised when no user row has the requested id."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        self.message = "User not found"
        super().__init__(f"User {user_id} not found")


class EmailExistsError(Exception):
    """Raised when an email is already taken by another user."""

    def __init__(self, email: str) -> None:
        self.email = email
        self.message = "Email already exists"
        super().__init__(self.message)


@dataclass(frozen=True)
class UserPage:
    """One page of users plus the size of the whole filtered set."""

    items: list[User]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _escape_like(term: str) -> str:
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def get_user_by_email(session: Session, email: str) -> User | None:
    return session.query(User).filter(User.email == normalize_email(email)).first()


def get_user_by_id(session: Session, user_id: int) -> User:
    """Return the user with this id. Raises UserNotFoundError if absent."""
    user = session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def _commit(session: Session, email: str) -> None:
    # The unique index can still fire if another request took the email in between.
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise EmailExistsError(email) from e


def insert_user(
    session: Session,
    *,
    name: str,
    email: str,
    password_hash: str,
    role: UserRole = UserRole.USER,
) -> User:
    """
    Insert a user whose email uniqueness was already checked; return the stored row.

    created_at and updated_at are set by the model defaults.
    """
    email = normalize_email(email)
    user = User(
        name=name,
        email=email,
        password_hash=password_hash,
        role=UserRole(role).value,
    )
    session.add(user)
    _commit(session, email)
    session.refresh(user)
    logger.info("User created: id=%s email=%s", user.id, user.email)
    return user


def update_user(session: Session, user_id: int, fields: dict[str, Any]) -> User:
    """
    Apply a partial update and return the updated row.

    Checks email uniqueness when the email changes, hashes a new password and
    always refreshes updated_at. id and created_at in the payload are ignored.
    """
    user = get_user_by_id(session, user_id)
    changes = {k: v for k, v in fields.items() if k not in IMMUTABLE_FIELDS}

    email = changes.get("email")
    if email is not None:
        email = normalize_email(email)
        changes["email"] = email
        if email != user.email and get_user_by_email(session, email) is not None:
            raise EmailExistsError(email)

    password = changes.pop("password", None)
    if password is not None:
        changes["password_hash"] = hash_password(password)

    role = changes.get("role")
    if role is not None:
        changes["role"] = UserRole(role).value

    for key, value in changes.items():
        if key not in UPDATABLE_FIELDS:
            logger.debug("Ignoring unknown update field %r for user %s", key, user_id)
            continue
        setattr(user, key, value)
    user.updated_at = datetime.now(UTC)

    _commit(session, user.email)
    session.refresh(user)
    logger.info("User %s updated: fields=%s", user_id, sorted(changes))
    return user


def update_current_user(session: Session, user_id: int, fields: dict[str, Any]) -> User:
    """Self-service update: a role in the payload is dropped, never applied."""
    changes = {k: v for k, v in fields.items() if k != "role"}
    return update_user(session, user_id, changes)


def delete_user(session: Session, user_id: int) -> None:
    """Delete a user. Raises UserNotFoundError if the row does not exist."""
    user = get_user_by_id(session, user_id)
    session.delete(user)
    session.commit()
    logger.info("User %s deleted", user_id)


def list_users(
    session: Session,
    *,
    page: int = 1,
    limit: int = 10,
    search: str = "",
    sort_by: str = DEFAULT_SORT_FIELD,
    sort_order: str = "desc",
) -> UserPage:
    """
    Return one page of users.

    search is a case-insensitive substring match on name or email. total counts
    every row matching the search, independent of the page window.
    """
    query = session.query(User)
    if search:
        pattern = f"%{_escape_like(search)}%"
        query = query.filter(
            or_(
                User.name.ilike(pattern, escape=LIKE_ESCAPE),
                User.email.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )

    total = query.count()

    column = SORT_COLUMNS.get(sort_by, SORT_COLUMNS[DEFAULT_SORT_FIELD])
    order = column.asc() if sort_order == "asc" else column.desc()
    offset = (page - 1) * limit
    items = query.order_by(order, User.id.asc()).offset(offset).limit(limit).all()

    return UserPage(items=items, total=total, page=page, limit=limit)
