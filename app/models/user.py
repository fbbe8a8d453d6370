"""ORM model for application users (auth and RBAC)."""

import enum
from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, Integer, String

from app.models.base import Base


class UserRole(str, enum.Enum):
    """Roles a user account can hold."""

    ADMIN = "admin"
    USER = "user"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class User(Base):
    """
    User account for JWT authentication and role-based access control.

    email is stored lowercased and trimmed; password_hash is never serialized.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default=UserRole.USER.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
