"""Registration and credential verification on top of the password hasher and user repository."""

import logging
from functools import lru_cache

from sqlalchemy.orm import Session

from app.core.security import hash_password, verify_password
from app.models.user import User, UserRole
from app.services.users import EmailExistsError, get_user_by_email, insert_user

logger = logging.getLogger(__name__)


class InvalidCredentialsError(Exception):
    """Raised for an unknown email or a wrong password; the two are deliberately indistinguishable."""

    def __init__(self) -> None:
        self.message = "Invalid credentials"
        super().__init__(self.message)


@lru_cache
def _dummy_password_hash() -> str:
    """Hash checked against when the email is unknown, so both rejections run one bcrypt check."""
    return hash_password("placeholder-password-never-matches")


def register_user(
    session: Session,
    *,
    name: str,
    email: str,
    password: str,
    role: UserRole = UserRole.USER,
) -> User:
    """
    Create a user account with a hashed password.

    Raises EmailExistsError if the (normalized) email is already registered.
    """
    if get_user_by_email(session, email) is not None:
        raise EmailExistsError(email)
    password_hash = hash_password(password)
    return insert_user(
        session,
        name=name,
        email=email,
        password_hash=password_hash,
        role=role,
    )


def authenticate_user(session: Session, email: str, password: str) -> User:
    """Return the user for these credentials. Raises InvalidCredentialsError otherwise."""
    user = get_user_by_email(session, email)
    if user is None:
        verify_password(password, _dummy_password_hash())
        logger.info("Sign-in rejected: no account for %s", email)
        raise InvalidCredentialsError()
    if not verify_password(password, user.password_hash):
        logger.info("Sign-in rejected: wrong password for user %s", user.id)
        raise InvalidCredentialsError()
    return user
